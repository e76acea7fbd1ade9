"""Ornament detection using pattern matching over sorted notes.

This module scans a note sequence, sorted by onset then pitch, for short
ornamental figures: single grace notes, mordents, turns and trills. Every
match becomes an :class:`OrnamentHypothesis` with a confidence score;
hypotheses may overlap, and a greedy selector then keeps a non-overlapping
subset, highest confidence first.

Timing priors. Each class has a characteristic relationship to the beat:

- mordent / turn take time from the principal: the figure precedes the beat
  and the principal arrives on it.
- grace_group is added to the principal: the principal keeps its on-beat
  position, so the grace note is off-beat.
- trill is the principal itself and is expected to start on the beat.

A ``timing_prior_conflict`` tag marks hypotheses whose observed beat
placement contradicts these expectations.
"""

import logging

from midi_annotator.models import (
    Note,
    OrnamentAnnotation,
    OrnamentClass,
    OrnamentDetectionParams,
    OrnamentHypothesis,
    OrnamentResult,
    OrnamentTimingBounds,
)
from midi_annotator.note_utils import assign_note_ids

logger = logging.getLogger(__name__)

TRILL_IS_PRINCIPAL = "trill_is_principal"
TIMING_PRIOR_CONFLICT = "timing_prior_conflict"
COMPETING_HYPOTHESIS = "competing_hypothesis"
PRINCIPAL_ASSIGNMENT_UNCERTAIN = "principal_assignment_uncertain"


def _cap01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def is_near_beat(tick: int, tq: int, tolerance_ticks: int) -> bool:
    """Check whether a tick lies within tolerance of a quarter-note boundary.

    Args:
        tick: Position in ticks.
        tq: Quarter-note length in ticks.
        tolerance_ticks: Allowed distance from the beat.

    Returns:
        True if the tick is at most ``tolerance_ticks`` before or after a beat.
    """
    offset = tick % tq
    return offset <= tolerance_ticks or (tq - offset) <= tolerance_ticks


def _timing_bounds(members: list[Note], principal: Note) -> OrnamentTimingBounds:
    return OrnamentTimingBounds(
        start_tick=min(n.onset for n in members),
        end_tick=max(n.end for n in members),
        principal_tick=principal.onset,
    )


def _apply_timing_priors(
    hypothesis: OrnamentHypothesis,
    principal: Note,
    params: OrnamentDetectionParams,
) -> None:
    tol = params.attach_gap_ticks
    tq = params.tq
    tags = list(hypothesis.ambiguity_tags)

    if hypothesis.ornament_class == OrnamentClass.TRILL:
        tags.append(TRILL_IS_PRINCIPAL)
        if not is_near_beat(hypothesis.timing_bounds.start_tick, tq, tol):
            tags.append(TIMING_PRIOR_CONFLICT)
    elif hypothesis.ornament_class == OrnamentClass.GRACE_GROUP:
        # A grace note starting on the beat is more likely a main note.
        if is_near_beat(hypothesis.timing_bounds.start_tick, tq, tol):
            tags.append(TIMING_PRIOR_CONFLICT)
    elif not is_near_beat(principal.onset, tq, tol):
        tags.append(TIMING_PRIOR_CONFLICT)

    hypothesis.ambiguity_tags = _unique(tags)


def _detect_grace_groups(
    notes: list[Note], params: OrnamentDetectionParams
) -> list[OrnamentHypothesis]:
    hypotheses = []
    for g, p in zip(notes, notes[1:]):
        gap = p.onset - g.end
        max_relative_dur = max(1, p.duration // 3)
        dur_limit = min(params.grace_max_dur_ticks, max_relative_dur)
        grace_is_short = g.duration <= dur_limit
        neighborish = abs(g.pitch - p.pitch) <= params.neighbor_max_semitones

        if (
            grace_is_short
            and gap <= params.attach_gap_ticks
            and g.duration <= params.ornament_max_span_ticks
            and neighborish
        ):
            dur_score = _cap01(1 - g.duration / (dur_limit + 1))
            gap_score = _cap01(1 - max(0, gap) / (params.attach_gap_ticks + 1))
            hypotheses.append(
                OrnamentHypothesis(
                    ornament_class=OrnamentClass.GRACE_GROUP,
                    principal_note_ref=p.id,
                    member_note_ids=[g.id],
                    timing_bounds=_timing_bounds([g], p),
                    confidence=_cap01((dur_score + gap_score) / 2),
                )
            )
    return hypotheses


def _detect_mordents(
    notes: list[Note], params: OrnamentDetectionParams
) -> list[OrnamentHypothesis]:
    hypotheses = []
    quarter_limit = params.tq / 4
    for i in range(len(notes) - 3):
        a, b, c, d = notes[i : i + 4]
        a_diff = a.pitch - b.pitch
        c_diff = c.pitch - b.pitch
        durations = [a.duration, b.duration, c.duration]
        max_dur = max(durations)
        min_dur = max(1, min(durations))

        same_neighbor_pitch = a.pitch == c.pitch
        same_side = a_diff != 0 and c_diff != 0 and _sign(a_diff) == _sign(c_diff)
        in_range = (
            abs(a_diff) <= params.neighbor_max_semitones
            and abs(c_diff) <= params.neighbor_max_semitones
        )
        similar_values = max_dur / min_dur <= 1.5
        short_enough = all(v <= quarter_limit for v in durations)
        long_principal = d.pitch == b.pitch and d.duration >= 2 * max_dur
        span = c.end - a.onset

        if (
            same_neighbor_pitch
            and same_side
            and in_range
            and similar_values
            and short_enough
            and long_principal
            and span <= params.ornament_max_span_ticks
        ):
            hypotheses.append(
                OrnamentHypothesis(
                    ornament_class=OrnamentClass.MORDENT,
                    principal_note_ref=d.id,
                    member_note_ids=[a.id, b.id, c.id],
                    timing_bounds=_timing_bounds([a, b, c], d),
                    confidence=_cap01(
                        0.8 + (params.neighbor_max_semitones - abs(a_diff)) * 0.04
                    ),
                )
            )
    return hypotheses


def _detect_turns(
    notes: list[Note], params: OrnamentDetectionParams
) -> list[OrnamentHypothesis]:
    hypotheses = []
    quarter_limit = params.tq / 4
    for i in range(len(notes) - 4):
        a, b, c, d, e = notes[i : i + 5]
        a_diff = a.pitch - b.pitch
        c_diff = c.pitch - b.pitch
        durations = [a.duration, b.duration, c.duration, d.duration]

        opposite_neighbors = (
            a_diff != 0 and c_diff != 0 and _sign(a_diff) != _sign(c_diff)
        )
        in_range = (
            abs(a_diff) <= params.neighbor_max_semitones
            and abs(c_diff) <= params.neighbor_max_semitones
        )
        principal_returns = d.pitch == b.pitch and e.pitch == b.pitch
        short_enough = all(v <= quarter_limit for v in durations)
        long_final = e.duration >= 2 * max(durations)
        # Measured to the start of the principal; its sustain is not part of the figure.
        span = e.onset - a.onset

        if (
            opposite_neighbors
            and in_range
            and principal_returns
            and short_enough
            and long_final
            and span <= params.ornament_max_span_ticks
        ):
            hypotheses.append(
                OrnamentHypothesis(
                    ornament_class=OrnamentClass.TURN,
                    principal_note_ref=e.id,
                    member_note_ids=[a.id, b.id, c.id, d.id],
                    timing_bounds=_timing_bounds([a, b, c, d], e),
                    confidence=_cap01(0.86),
                )
            )
    return hypotheses


def _detect_trills(
    notes: list[Note], params: OrnamentDetectionParams
) -> list[OrnamentHypothesis]:
    hypotheses = []
    for i in range(len(notes) - 3):
        for j in range(i + 3, len(notes)):
            seq = notes[i : j + 1]
            if params.max_trill_notes is not None and len(seq) > params.max_trill_notes:
                break
            pitches = _unique([n.pitch for n in seq])
            if len(pitches) != 2:
                break
            if any(n.pitch == prev.pitch for prev, n in zip(seq, seq[1:])):
                break
            if abs(pitches[0] - pitches[1]) > params.neighbor_max_semitones:
                break

            first, second = seq[0], seq[1]
            member_ids = [n.id for n in seq]
            confidence = _cap01(0.7 + (len(seq) - 4) * 0.04)
            tags = [PRINCIPAL_ASSIGNMENT_UNCERTAIN, COMPETING_HYPOTHESIS]

            # Both the first and the second note are kept as competing principals.
            hypotheses.append(
                OrnamentHypothesis(
                    ornament_class=OrnamentClass.TRILL,
                    principal_note_ref=first.id,
                    member_note_ids=member_ids,
                    timing_bounds=_timing_bounds(seq, first),
                    confidence=confidence,
                    ambiguity_tags=list(tags),
                )
            )
            hypotheses.append(
                OrnamentHypothesis(
                    ornament_class=OrnamentClass.TRILL,
                    principal_note_ref=second.id,
                    member_note_ids=list(member_ids),
                    timing_bounds=_timing_bounds(seq, second),
                    confidence=_cap01(confidence - 0.03),
                    ambiguity_tags=list(tags),
                )
            )
    return hypotheses


def _tag_competing_windows(hypotheses: list[OrnamentHypothesis]) -> None:
    by_window: dict[tuple[str, int, int], list[OrnamentHypothesis]] = {}
    for h in hypotheses:
        key = (h.principal_note_ref, h.timing_bounds.start_tick, h.timing_bounds.end_tick)
        by_window.setdefault(key, []).append(h)

    for group in by_window.values():
        classes = _unique([h.ornament_class.value for h in group])
        if len(classes) < 2:
            continue
        for h in group:
            others = "_".join(c for c in classes if c != h.ornament_class.value)
            h.ambiguity_tags = _unique(
                h.ambiguity_tags + [COMPETING_HYPOTHESIS, f"competes_with_{others}"]
            )


def detect_ornament_hypotheses(
    notes: list[Note], params: OrnamentDetectionParams
) -> list[OrnamentHypothesis]:
    """Find every ornament reading of a note sequence.

    Args:
        notes: Notes in any order; ids are assigned where missing.
        params: Detection thresholds.

    Returns:
        All hypotheses, sorted by confidence descending (ties keep detection
        order: grace groups, mordents, turns, trills). Fewer than two notes
        yields an empty list.
    """
    ordered = assign_note_ids(notes)
    if len(ordered) < 2:
        return []

    hypotheses = (
        _detect_grace_groups(ordered, params)
        + _detect_mordents(ordered, params)
        + _detect_turns(ordered, params)
        + _detect_trills(ordered, params)
    )

    note_by_id = {n.id: n for n in ordered}
    for h in hypotheses:
        principal = note_by_id.get(h.principal_note_ref)
        if principal is not None:
            _apply_timing_priors(h, principal, params)

    _tag_competing_windows(hypotheses)

    return sorted(hypotheses, key=lambda h: -h.confidence)


def select_ornament_hypotheses(
    hypotheses: list[OrnamentHypothesis],
) -> list[OrnamentHypothesis]:
    """Greedily keep the most confident hypotheses with disjoint members.

    Hypotheses are visited through an index list sorted by confidence
    (descending, stable). A hypothesis is accepted only if none of its member
    notes has been claimed by an earlier accepted one.

    Args:
        hypotheses: Candidate hypotheses.

    Returns:
        The accepted hypotheses in acceptance order.
    """
    order = sorted(range(len(hypotheses)), key=lambda i: -hypotheses[i].confidence)
    selected: list[OrnamentHypothesis] = []
    claimed: set[str] = set()

    for index in order:
        h = hypotheses[index]
        if any(note_id in claimed for note_id in h.member_note_ids):
            continue
        selected.append(h)
        claimed.update(h.member_note_ids)

    return selected


def tag_ornaments(
    notes: list[Note], params: OrnamentDetectionParams
) -> OrnamentResult:
    """Detect, select and annotate ornaments.

    Args:
        notes: Notes in any order.
        params: Detection thresholds.

    Returns:
        OrnamentResult whose ``annotations`` hold one record per note that is
        either a member or the principal of a selected ornament. Notes without
        a match are passed through unannotated.
    """
    ordered = assign_note_ids(notes)
    hypotheses = detect_ornament_hypotheses(ordered, params)
    selected = select_ornament_hypotheses(hypotheses)

    note_by_id = {n.id: n for n in ordered}
    updates: dict[str, dict] = {}

    for h in selected:
        principal = note_by_id.get(h.principal_note_ref)
        if principal is None:
            continue

        updates.setdefault(principal.id, {}).update(
            has_ornaments=True,
            ornament_class=h.ornament_class,
            hypotheses=[
                c for c in hypotheses if c.principal_note_ref == principal.id
            ],
        )

        for note_id in h.member_note_ids:
            if note_id not in note_by_id:
                continue
            updates.setdefault(note_id, {}).update(
                is_ornament=True,
                ornament_class=h.ornament_class,
                principal_note_ref=principal.id,
                principal_pitch=principal.pitch,
                principal_onset=principal.onset,
                timing_bounds=h.timing_bounds,
                confidence=h.confidence,
                ambiguity_tags=list(h.ambiguity_tags),
                hypotheses=[c for c in hypotheses if note_id in c.member_note_ids],
            )

    annotations = {
        note_id: OrnamentAnnotation(note_id=note_id, **fields)
        for note_id, fields in updates.items()
    }

    logger.debug(
        f"Ornament detection: {len(hypotheses)} hypotheses, "
        f"{len(selected)} selected, {sum(a.is_ornament for a in annotations.values())} "
        "ornament notes"
    )

    return OrnamentResult(
        notes=ordered,
        hypotheses=hypotheses,
        selected=selected,
        annotations=annotations,
    )
