"""Shadow quantization: grid snapping with decision provenance.

Notes are snapped to one of up to two competing rhythm grids (Primary and
Secondary) in two passes:

1. Pass 1 scores every grid candidate of each note in isolation and assigns
   a confidence class to the locally best one.
2. Pass 2 walks the notes in onset order and re-scores every candidate
   against the notes resolved so far, using a weighted objective (ordering,
   movement, unison overlap and polyphony blips, contextual rhythm family,
   confidence-aware edit cost). The lowest total wins.

Every resolved note gets a :class:`ShadowDecision` recording the winner, its
objective breakdown, the conflicts found and all candidates considered.
"""

import logging

from pydantic import BaseModel, Field

from midi_annotator.models import (
    Accommodation,
    CandidateScore,
    ConflictType,
    Note,
    ObjectiveBreakdown,
    QuantizationResult,
    RhythmFamily,
    RhythmRule,
    ShadowConfidence,
    ShadowDecision,
    ShadowQuantizerParams,
)
from midi_annotator.note_utils import assign_note_ids
from midi_annotator.rhythm import get_grid_quantum, snap_duration, snap_to_grid

logger = logging.getLogger(__name__)

PASSTHROUGH_NOTE_VALUE = "Off"


class GridCandidate(BaseModel):
    """A note snapped to one rhythm grid."""

    family: RhythmFamily
    note_value: str
    quantum_ticks: int
    onset_ticks: int
    duration_ticks: int
    onset_error: int = 0
    duration_error: int = 0

    @property
    def error(self) -> int:
        return self.onset_error + self.duration_error


class NoteAnalysis(BaseModel):
    """Pass 1 outcome for one note."""

    note: Note
    best: GridCandidate
    confidence: ShadowConfidence
    alternatives: list[GridCandidate] = Field(default_factory=list)


class EvaluatedCandidate(BaseModel):
    """Pass 2 evaluation of one candidate."""

    candidate: GridCandidate
    onset_ticks: int
    duration_ticks: int
    objective: ObjectiveBreakdown
    conflict_types: list[ConflictType] = Field(default_factory=list)
    accommodations: list[Accommodation] = Field(default_factory=list)


def _make_candidate(note: Note, rule: RhythmRule, quantum: int) -> GridCandidate:
    onset = snap_to_grid(note.onset, quantum)
    duration = snap_duration(note.duration, quantum)
    return GridCandidate(
        family=rule.family,
        note_value=rule.min_note_value,
        quantum_ticks=quantum,
        onset_ticks=onset,
        duration_ticks=duration,
        onset_error=abs(note.onset - onset),
        duration_error=abs(note.duration - duration),
    )


def _passthrough_candidate(note: Note) -> GridCandidate:
    return GridCandidate(
        family=RhythmFamily.SIMPLE,
        note_value=PASSTHROUGH_NOTE_VALUE,
        quantum_ticks=1,
        onset_ticks=note.onset,
        duration_ticks=note.duration,
    )


def _active_grids(
    ppq: int, primary: RhythmRule, secondary: RhythmRule | None
) -> list[tuple[RhythmRule, int]]:
    grids = []
    for rule in (primary, secondary):
        if rule is None:
            continue
        quantum = get_grid_quantum(ppq, rule)
        if quantum > 0:
            grids.append((rule, quantum))
    return grids


def certainty_tolerance(min_quantum: int, params: ShadowQuantizerParams) -> float:
    """Absolute error (ticks) under which a candidate counts as certain."""
    return max(min_quantum * params.tolerance_factor, params.tolerance_floor_ticks)


def classify_confidence(
    ranked: list[GridCandidate],
    primary_family: RhythmFamily,
    tolerance: float,
) -> ShadowConfidence:
    """Confidence class of the best of a ranked candidate list.

    Args:
        ranked: Candidates sorted best first; must not be empty.
        primary_family: Family of the Primary rhythm rule.
        tolerance: Certainty tolerance in ticks.

    Returns:
        CERTAIN when the best error is within tolerance; WEAK_PRIMARY when
        the best error is at most half the runner-up's (or there is no
        runner-up); AMBIGUOUS otherwise, unless the best candidate belongs to
        the Primary family, which lifts it to WEAK_PRIMARY.
    """
    best = ranked[0]
    if best.error <= tolerance:
        return ShadowConfidence.CERTAIN

    if len(ranked) < 2 or best.error <= 0.5 * ranked[1].error:
        return ShadowConfidence.WEAK_PRIMARY

    if best.family == primary_family:
        return ShadowConfidence.WEAK_PRIMARY
    return ShadowConfidence.AMBIGUOUS


def analyze_shadow_certainty(
    notes: list[Note],
    ppq: int,
    primary: RhythmRule,
    secondary: RhythmRule | None = None,
    params: ShadowQuantizerParams | None = None,
) -> list[NoteAnalysis]:
    """Pass 1: score each note against every enabled grid in isolation.

    Args:
        notes: Notes with ids, in processing order.
        ppq: Ticks per quarter note.
        primary: Primary rhythm rule.
        secondary: Optional Secondary rhythm rule.
        params: Quantizer weights.

    Returns:
        One NoteAnalysis per note, in input order. Candidates are ranked by
        combined error, then onset error, then rule order.
    """
    params = params or ShadowQuantizerParams()
    grids = _active_grids(ppq, primary, secondary)
    min_quantum = min((q for _, q in grids), default=0)
    tolerance = certainty_tolerance(min_quantum, params)

    analyses = []
    for note in notes:
        candidates = [_make_candidate(note, rule, quantum) for rule, quantum in grids]

        if not candidates:
            analyses.append(
                NoteAnalysis(
                    note=note,
                    best=_passthrough_candidate(note),
                    confidence=ShadowConfidence.CERTAIN,
                )
            )
            continue

        ranked = sorted(candidates, key=lambda c: (c.error, c.onset_error))
        analyses.append(
            NoteAnalysis(
                note=note,
                best=ranked[0],
                confidence=classify_confidence(ranked, primary.family, tolerance),
                alternatives=ranked[1:],
            )
        )

    return analyses


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def count_unison_overlaps(notes: list[Note]) -> int:
    """Number of same-pitch note pairs that overlap in time."""
    overlaps = 0
    for i, a in enumerate(notes):
        for b in notes[i + 1 :]:
            if a.pitch == b.pitch and _overlaps(a.onset, a.end, b.onset, b.end):
                overlaps += 1
    return overlaps


def count_polyphony_blips(notes: list[Note], ppq: int, legato_ticks: float = 0) -> int:
    """Count short-lived polyphony spikes.

    A spike starts when more than one note sounds and ends when at most one
    does. It is a blip when it lasts less than one beat (``ppq`` ticks) and
    at least ``legato_ticks``; shorter overlaps are articulation. Note ends
    are processed before note starts at the same tick, so notes that merely
    touch never form a spike.

    Args:
        notes: Notes to inspect.
        ppq: Ticks per quarter note (one beat).
        legato_ticks: Minimum spike length that counts as polyphony.

    Returns:
        Number of blips.
    """
    events = []
    for n in notes:
        events.append((n.onset, 1))
        events.append((n.end, -1))
    events.sort()

    active = 0
    spike_start = None
    blips = 0
    for tick, delta in events:
        previous = active
        active += delta
        if previous <= 1 < active:
            spike_start = tick
        elif previous > 1 >= active and spike_start is not None:
            length = tick - spike_start
            if legato_ticks <= length < ppq:
                blips += 1
            spike_start = None

    return blips


def local_dominant_family(
    analyses: list[NoteAnalysis], position: int, radius: int = 3
) -> RhythmFamily:
    """Most frequent Pass 1 family within ``radius`` notes of ``position``.

    Ties go to the family seen first in the window.
    """
    start = max(0, position - radius)
    end = min(len(analyses) - 1, position + radius)
    counts: dict[RhythmFamily, int] = {}
    for analysis in analyses[start : end + 1]:
        family = analysis.best.family
        counts[family] = counts.get(family, 0) + 1

    winner = analyses[position].best.family
    best = -1
    for family, count in counts.items():
        if count > best:
            best = count
            winner = family
    return winner


def _edit_cost(confidence: ShadowConfidence, params: ShadowQuantizerParams) -> float:
    return {
        ShadowConfidence.CERTAIN: params.edit_cost_certain,
        ShadowConfidence.WEAK_PRIMARY: params.edit_cost_weak_primary,
        ShadowConfidence.AMBIGUOUS: params.edit_cost_ambiguous,
    }[confidence]


def _blip_penalty(confidence: ShadowConfidence, params: ShadowQuantizerParams) -> float:
    return {
        ShadowConfidence.CERTAIN: params.blip_penalty_certain,
        ShadowConfidence.WEAK_PRIMARY: params.blip_penalty_uncertain,
        ShadowConfidence.AMBIGUOUS: params.blip_penalty_uncertain,
    }[confidence]


def _context_penalty(
    confidence: ShadowConfidence, params: ShadowQuantizerParams
) -> float:
    return {
        ShadowConfidence.CERTAIN: params.context_penalty_certain,
        ShadowConfidence.WEAK_PRIMARY: params.context_penalty_uncertain,
        ShadowConfidence.AMBIGUOUS: params.context_penalty_uncertain,
    }[confidence]


def evaluate_candidate(
    position: int,
    analyses: list[NoteAnalysis],
    resolved: list[Note],
    resolved_quanta: list[int],
    candidate: GridCandidate,
    ppq: int,
    params: ShadowQuantizerParams,
    legato_ticks: float = 0,
) -> EvaluatedCandidate:
    """Score one candidate of the note at ``position`` against resolved notes.

    Same-pitch overlaps are first accommodated by truncating the earlier of
    the two notes to a whole number of its own quanta ending at or before
    the later onset, as long as at least one quantum remains; only otherwise
    is the fallback penalty charged. Accommodation is evaluated on copies;
    the caller commits it if the candidate wins.

    Args:
        position: Index of the note in processing order.
        analyses: Pass 1 analyses in processing order.
        resolved: Notes already resolved, in processing order.
        resolved_quanta: Grid quantum of each resolved note.
        candidate: Candidate to score.
        ppq: Ticks per quarter note.
        params: Quantizer weights.
        legato_ticks: Overlap length below which spikes are not blips.

    Returns:
        The evaluated candidate with its objective breakdown.
    """
    analysis = analyses[position]
    original = analysis.note
    confidence = analysis.confidence
    baseline = analysis.best

    onset = candidate.onset_ticks
    duration = candidate.duration_ticks
    test_notes = list(resolved)
    conflicts: list[ConflictType] = []
    accommodations: list[Accommodation] = []
    overlap_penalty = 0.0
    overlap_count = 0

    for j, existing in enumerate(test_notes):
        if existing.pitch != original.pitch:
            continue
        if not _overlaps(onset, onset + duration, existing.onset, existing.end):
            continue

        overlap_count += 1
        conflicts.append(ConflictType.UNISON_OVERLAP)

        if existing.onset < onset:
            quantum = max(1, resolved_quanta[j])
            shortened = (onset - existing.onset) // quantum * quantum
            if shortened >= quantum:
                accommodations.append(
                    Accommodation(
                        note_id=existing.id,
                        shortened_from=existing.duration,
                        shortened_to=shortened,
                        reason="Earlier unison note shortened to end by the later onset.",
                    )
                )
                test_notes[j] = existing.model_copy(update={"duration": shortened})
                continue
        elif onset < existing.onset:
            quantum = max(1, candidate.quantum_ticks)
            shortened = (existing.onset - onset) // quantum * quantum
            if shortened >= quantum:
                accommodations.append(
                    Accommodation(
                        note_id=original.id,
                        shortened_from=duration,
                        shortened_to=shortened,
                        reason="Candidate shortened to end by the later unison onset.",
                    )
                )
                duration = shortened
                continue

        overlap_penalty += params.overlap_fallback_penalty

    placed = original.model_copy(update={"onset": onset, "duration": duration})
    test_notes.append(placed)

    baseline_blips = count_polyphony_blips(resolved, ppq, legato_ticks)
    candidate_blips = count_polyphony_blips(test_notes, ppq, legato_ticks)
    blip_penalty = 0.0
    if candidate_blips > baseline_blips:
        blip_penalty = (candidate_blips - baseline_blips) * _blip_penalty(
            confidence, params
        )
        conflicts.append(ConflictType.POLYPHONY_BLIP)

    context = 0.0
    dominant = local_dominant_family(analyses, position, params.context_radius)
    if candidate.family != dominant:
        context = _context_penalty(confidence, params)
        conflicts.append(ConflictType.CONTEXTUAL_RHYTHM)

    ordering = 0.0
    if resolved and onset < resolved[-1].onset:
        ordering = params.ordering_penalty

    raw_duration = max(1, original.duration)
    ratio = duration / raw_duration
    if ratio < params.min_duration_ratio or ratio > params.max_duration_ratio:
        duration_penalty = params.movement_penalty
    else:
        duration_penalty = (
            abs(duration - raw_duration) / raw_duration * params.duration_weight
        )

    onset_shift = abs(onset - original.onset)
    onset_limit = min(ppq / 2, 1.5 * max(1, duration))
    if onset_shift > onset_limit:
        onset_penalty = params.movement_penalty
    else:
        onset_penalty = params.movement_penalty * onset_shift / onset_limit
    movement = duration_penalty + onset_penalty

    overlap_and_blip = (
        overlap_penalty
        + overlap_count * params.overlap_occurrence_penalty
        + blip_penalty
    )

    edit = 0.0
    if (
        candidate.onset_ticks != baseline.onset_ticks
        or candidate.duration_ticks != baseline.duration_ticks
    ):
        edit = _edit_cost(confidence, params)

    objective = ObjectiveBreakdown(
        note_retention=0.0,
        ordering=ordering,
        movement=movement,
        overlap_and_blip=overlap_and_blip,
        contextual_rhythm=context,
        confidence_aware_edit=edit,
        total=ordering + movement + overlap_and_blip + context + edit,
    )

    return EvaluatedCandidate(
        candidate=candidate,
        onset_ticks=onset,
        duration_ticks=duration,
        objective=objective,
        conflict_types=list(dict.fromkeys(conflicts)),
        accommodations=accommodations,
    )


def _candidate_score(item: EvaluatedCandidate) -> CandidateScore:
    return CandidateScore(
        family=item.candidate.family,
        note_value=item.candidate.note_value,
        onset_ticks=item.onset_ticks,
        duration_ticks=item.duration_ticks,
        onset_error=item.candidate.onset_error,
        duration_error=item.candidate.duration_error,
        total_score=item.objective.total,
        objective=item.objective,
        conflict_types=item.conflict_types,
    )


def resolve_grid_conflicts(
    analyses: list[NoteAnalysis],
    ppq: int,
    params: ShadowQuantizerParams | None = None,
    legato_ticks: float = 0,
) -> QuantizationResult:
    """Pass 2: contextual resolution in onset order.

    Args:
        analyses: Pass 1 analyses.
        ppq: Ticks per quarter note.
        params: Quantizer weights.
        legato_ticks: Overlap length below which spikes are not blips.

    Returns:
        QuantizationResult with resolved notes in processing order and one
        decision per note.
    """
    params = params or ShadowQuantizerParams()
    order = sorted(
        range(len(analyses)),
        key=lambda i: (analyses[i].note.onset, analyses[i].note.pitch, analyses[i].note.id),
    )
    ordered = [analyses[i] for i in order]

    resolved: list[Note] = []
    resolved_quanta: list[int] = []
    position_by_id: dict[str, int] = {}
    decisions: dict[str, ShadowDecision] = {}

    for position, analysis in enumerate(ordered):
        candidates = [analysis.best] + analysis.alternatives
        evaluated = [
            evaluate_candidate(
                position,
                ordered,
                resolved,
                resolved_quanta,
                candidate,
                ppq,
                params,
                legato_ticks,
            )
            for candidate in candidates
        ]
        evaluated.sort(key=lambda item: item.objective.total)
        winner = evaluated[0]

        # Commit accommodations of already-resolved notes.
        for accommodation in winner.accommodations:
            j = position_by_id.get(accommodation.note_id)
            if j is None:
                continue
            resolved[j] = resolved[j].model_copy(
                update={"duration": accommodation.shortened_to}
            )
            decisions[accommodation.note_id] = decisions[
                accommodation.note_id
            ].model_copy(update={"selected_duration_ticks": accommodation.shortened_to})

        note = analysis.note.model_copy(
            update={"onset": winner.onset_ticks, "duration": winner.duration_ticks}
        )
        position_by_id[note.id] = len(resolved)
        resolved.append(note)
        resolved_quanta.append(winner.candidate.quantum_ticks)

        decisions[note.id] = ShadowDecision(
            note_id=note.id,
            original_onset=analysis.note.onset,
            original_duration=analysis.note.duration,
            confidence=analysis.confidence,
            pass1_best_family=analysis.best.family,
            selected_family=winner.candidate.family,
            selected_note_value=winner.candidate.note_value,
            selected_onset_ticks=winner.onset_ticks,
            selected_duration_ticks=winner.duration_ticks,
            objective_breakdown=winner.objective,
            conflict_types=winner.conflict_types,
            accommodation_applied=(
                winner.accommodations[0] if winner.accommodations else None
            ),
            accommodations=winner.accommodations,
            alternatives=[_candidate_score(item) for item in evaluated],
        )

    return QuantizationResult(notes=resolved, decisions=decisions)


def apply_shadow_quantization(
    notes: list[Note],
    ppq: int,
    primary: RhythmRule,
    secondary: RhythmRule | None = None,
    params: ShadowQuantizerParams | None = None,
) -> QuantizationResult:
    """Snap notes to the Primary/Secondary grids with full provenance.

    Args:
        notes: Notes in any order.
        ppq: Ticks per quarter note.
        primary: Primary rhythm rule; when disabled, notes pass through.
        secondary: Optional Secondary rhythm rule.
        params: Quantizer weights.

    Returns:
        QuantizationResult with the resolved notes and a decision per note id.
        With Primary disabled, the notes keep their timing and no decisions
        are recorded.
    """
    ordered = assign_note_ids(notes)
    if not primary.enabled:
        return QuantizationResult(notes=ordered)

    params = params or ShadowQuantizerParams()
    grids = _active_grids(ppq, primary, secondary)
    min_quantum = min((q for _, q in grids), default=0)
    legato_ticks = min_quantum * params.legato_overlap_factor

    analyses = analyze_shadow_certainty(ordered, ppq, primary, secondary, params)
    result = resolve_grid_conflicts(analyses, ppq, params, legato_ticks)

    moved = sum(
        1
        for d in result.decisions.values()
        if d.selected_onset_ticks != d.original_onset
        or d.selected_duration_ticks != d.original_duration
    )
    logger.debug(
        f"Shadow quantization: {len(result.notes)} notes, {moved} moved, "
        f"{sum(1 for d in result.decisions.values() if d.conflict_types)} with conflicts"
    )
    return result
