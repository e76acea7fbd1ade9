"""Voice separation for polyphonic note streams.

Splits a flat list of notes into near-monophonic voices in three steps:

1. Density analysis: the timeline is cut at every note boundary and the
   number of simultaneously sounding notes is measured per slice. The
   highest density sustained for at least one measure becomes the target
   voice count.
2. Anchor assignment: in sustained regions at exactly that density, every
   fully saturated slice assigns its notes to voices by pitch rank.
3. Gap filling: the remaining notes are placed, in onset order, into the
   voice with the lowest continuity cost. Notes that no voice can take
   plausibly become orphans instead of being forced into a voice.
"""

import logging
import math

import numpy as np
from pydantic import BaseModel, Field

from midi_annotator.models import (
    Note,
    VoiceCostEntry,
    VoiceCostParams,
    VoiceDistributionResult,
    VoiceExplanation,
    VoiceSeparationParams,
)
from midi_annotator.note_utils import assign_note_ids, get_voice_label
from midi_annotator.rhythm import ticks_per_measure

logger = logging.getLogger(__name__)

PHASE_ANCHOR = "1 - Anchor (Full Block)"
PHASE_GAP_FILL = "2 - Gap Fill"
PHASE_ORPHAN = "3 - Orphan"


class DensitySlice(BaseModel):
    """Interval between two consecutive note boundaries."""

    start: int
    end: int
    active: list[Note] = Field(default_factory=list)

    @property
    def density(self) -> int:
        return len(self.active)


class DensityArea(BaseModel):
    """Run of slices at or above a density, merged across short gaps."""

    start_tick: int
    end_tick: int
    density: int
    slices: list[DensitySlice] = Field(default_factory=list)

    @property
    def length(self) -> int:
        return self.end_tick - self.start_tick


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def build_density_slices(notes: list[Note]) -> list[DensitySlice]:
    """Cut the timeline at every onset and release and count active notes.

    A note is active in a slice when it sounds at the slice midpoint.
    """
    boundaries = sorted({n.onset for n in notes} | {n.end for n in notes})
    slices = []
    for start, end in zip(boundaries, boundaries[1:]):
        mid = (start + end) / 2
        active = [n for n in notes if n.onset <= mid < n.end]
        slices.append(DensitySlice(start=start, end=end, active=active))
    return slices


def find_areas_at_density(
    slices: list[DensitySlice], density: int, merge_gap: float
) -> list[DensityArea]:
    """Group slices with at least ``density`` active notes into areas.

    Args:
        slices: Density slices in time order.
        density: Minimum number of active notes.
        merge_gap: Largest gap (ticks) bridged between two qualifying slices.

    Returns:
        Areas in time order.
    """
    areas: list[DensityArea] = []
    current: DensityArea | None = None
    for s in slices:
        if s.density < density:
            continue
        if current is not None and s.start - current.end_tick <= merge_gap:
            current.end_tick = s.end
            current.slices.append(s)
            continue
        if current is not None:
            areas.append(current)
        current = DensityArea(
            start_tick=s.start, end_tick=s.end, density=density, slices=[s]
        )
    if current is not None:
        areas.append(current)
    return areas


def find_target_voice_count(
    slices: list[DensitySlice], measure_ticks: int, merge_gap: float
) -> int:
    """Highest density sustained for at least one measure.

    Falls back to one less than the peak density (but at least 1) when no
    density is sustained that long.
    """
    max_density = max((s.density for s in slices), default=0)
    ceiling = max_density
    while ceiling >= 1:
        areas = find_areas_at_density(slices, ceiling, merge_gap)
        if any(area.length >= measure_ticks for area in areas):
            return ceiling
        ceiling -= 1
    return max(1, max_density - 1)


def get_leap_cost(leap: int, costs: VoiceCostParams) -> tuple[float, list[str]]:
    """Cost of a melodic leap with notches at the minor seventh and octave.

    Args:
        leap: Absolute interval in semitones.
        costs: Cost constants.

    Returns:
        The cost and the list of terms that built it.
    """
    if leap <= 0:
        return 0.0, ["0"]

    cost = float(leap)
    parts = [f"{leap:.1f}"]
    if leap >= costs.m7_leap:
        cost += costs.m7_notch
        parts.append(f"+{costs.m7_notch}@m7")
    if leap >= costs.octave_leap:
        cost += costs.octave_notch
        parts.append(f"+{costs.octave_notch}@8ve")
    if leap > costs.octave_leap:
        above = (leap - costs.octave_leap) * costs.above_octave_slope
        cost += above
        parts.append(f"+{above:.1f}>8veSlope")
    if leap > costs.wide_leap:
        cost += costs.wide_leap_notch
        parts.append(f"+{costs.wide_leap_notch}@>{costs.wide_leap}")
    return cost, parts


def estimate_leap_scale(track: list[Note], costs: VoiceCostParams) -> float:
    """Mean of a voice's most recent leaps, clamped to the configured range."""
    if len(track) < 2:
        return costs.default_leap_scale

    recent = sorted(track, key=lambda n: n.onset)[-costs.leap_window :]
    leaps = np.abs(np.diff([n.pitch for n in recent]))
    return float(
        _clamp(float(np.mean(leaps)), costs.min_leap_scale, costs.max_leap_scale)
    )


def find_neighbors(
    track: list[Note], note: Note, overlap_tolerance: int
) -> tuple[Note | None, Note | None]:
    """Closest notes of a voice released before and starting after ``note``."""
    eff_start = note.onset + overlap_tolerance
    eff_end = note.end - overlap_tolerance

    before = [n for n in track if n.end <= eff_start]
    after = [n for n in track if n.onset >= eff_end]
    prev = max(before, key=lambda n: (n.end, n.onset), default=None)
    nxt = min(after, key=lambda n: n.onset, default=None)
    return prev, nxt


def _overlaps_voice(track: list[Note], note: Note, tolerance: int) -> bool:
    start = note.onset
    end = max(note.onset, note.end - tolerance)
    for existing in track:
        e_end = max(existing.onset, existing.end - tolerance)
        if start < e_end and end > existing.onset:
            return True
    return False


def _sounding_at(track: list[Note], tick: int) -> Note | None:
    sounding = [n for n in track if n.onset <= tick < n.end]
    return max(sounding, key=lambda n: n.onset, default=None)


def _forms_phrase(
    remaining: list[Note], index: int, measure_ticks: int, lookahead: int
) -> bool:
    note = remaining[index]
    for future in remaining[index + 1 : index + lookahead]:
        if future.onset - note.end > measure_ticks:
            break
        if future.onset > note.onset:
            return True
    return False


class VoiceScore(BaseModel):
    """Cost of one voice for one note, or the reasons it was vetoed."""

    cost: float = 0.0
    details: list[str] = Field(default_factory=list)
    orphan_triggers: list[str] = Field(default_factory=list)


def score_voice(
    note: Note,
    voice: int,
    voice_tracks: list[list[Note]],
    forms_phrase: bool,
    ppq: int,
    measure_ticks: int,
    params: VoiceSeparationParams,
    costs: VoiceCostParams,
) -> VoiceScore:
    """Gap-filling cost of placing ``note`` in ``voice``.

    Combines leap cost to the voice neighbors, a register tie-breaker,
    chord-addition or wake-up penalties, chord plausibility, path distortion
    and crossing pressure against the adjacent voices. Any orphan trigger
    vetoes the voice.
    """
    track = voice_tracks[voice]
    total = len(voice_tracks)
    margin = costs.hard_crossing_margin
    score = VoiceScore()

    prev, nxt = find_neighbors(track, note, params.overlap_tolerance)
    leap_prev = abs(prev.pitch - note.pitch) if prev else 0
    leap_next = abs(nxt.pitch - note.pitch) if nxt else 0
    cost_prev, parts_prev = get_leap_cost(leap_prev, costs)
    cost_next, parts_next = get_leap_cost(leap_next, costs)
    interval = (cost_prev if prev else 0.0) + (cost_next if nxt else 0.0)
    score.cost += interval
    if interval > 0:
        score.details.append(
            f"Dist: {interval:.1f} [prev={''.join(parts_prev)}; next={''.join(parts_next)}]"
        )
    else:
        score.details.append("Dist: 0")

    # Register tie-breaker
    target = costs.zone_top_pitch - voice * (costs.zone_span / max(1, total - 1))
    zone = abs(target - note.pitch) * costs.zone_weight * (params.pitch_bias / 50)
    score.cost += zone
    score.details.append(f"Zone: {zone:.1f}")

    gap_prev = note.onset - prev.end if prev else math.inf
    gap_next = nxt.onset - note.end if nxt else math.inf
    is_chord_addition = prev is not None and (
        prev.onset == note.onset or prev.end > note.onset
    )
    leap_scale = estimate_leap_scale(track, costs)
    large_leap = _clamp(
        round(leap_scale * costs.large_leap_factor),
        costs.large_leap_min,
        costs.large_leap_max,
    )
    soft_margin = _clamp(
        round(leap_scale / 2), costs.soft_crossing_min, costs.soft_crossing_max
    )

    penalty = 0.0
    if is_chord_addition:
        penalty += costs.chord_addition_penalty
        score.details.append(f"Chord (+{costs.chord_addition_penalty:g})")
    else:
        prev_measures = (
            gap_prev / measure_ticks
            if math.isfinite(gap_prev)
            else costs.missing_neighbor_measures
        )
        next_measures = (
            gap_next / measure_ticks
            if math.isfinite(gap_next)
            else costs.missing_neighbor_measures
        )
        short_blip = _clamp((ppq - max(1, note.duration)) / ppq, 0, 1)
        isolation = _clamp(prev_measures - 1, 0, costs.isolation_cap) * _clamp(
            next_measures - 1, 0, costs.isolation_cap
        )
        support = costs.phrase_support_damping if forms_phrase else 0.0
        continuity_stress = (leap_prev + leap_next) / max(1, large_leap * 2)
        wake_blip = short_blip * isolation * (1 - support)

        penalty += wake_blip * costs.wake_blip_weight
        score.details.append(
            f"WakeBlip={wake_blip:.2f} (+{wake_blip * costs.wake_blip_weight:.1f})"
        )

        if prev_measures > 1 and next_measures <= 1:
            penalty += costs.late_wake_penalty
            score.details.append(f"Late Wake (+{costs.late_wake_penalty:g})")
        elif next_measures > 1 and prev_measures <= 1:
            penalty += costs.phrase_end_penalty
            score.details.append(f"End (+{costs.phrase_end_penalty:g})")

        if wake_blip * continuity_stress > costs.wake_orphan_limit:
            score.orphan_triggers.append(
                "Short wake-up with poor continuity."
            )

    if is_chord_addition:
        chord = [n.pitch for n in track if n.onset <= note.onset < n.end]
        pitches = np.sort(np.array(chord + [note.pitch]))
        span = int(pitches[-1] - pitches[0])
        inner_gap = int(np.max(np.diff(pitches))) if len(pitches) > 1 else 0
        drift = abs(note.pitch - float(np.mean(pitches)))
        span_limit = costs.chord_span_base + max(0, len(pitches) - 2) * costs.chord_span_per_note

        span_pressure = _clamp(span / max(1, span_limit) - 1, 0, 2)
        spacing_pressure = _clamp(inner_gap / max(1, costs.chord_inner_gap_limit) - 1, 0, 2)
        drift_pressure = _clamp(drift / max(1, costs.chord_drift_limit) - 1, 0, 2)
        chord_pressure = (
            span_pressure * costs.chord_span_weight
            + spacing_pressure * costs.chord_spacing_weight
            + drift_pressure * costs.chord_drift_weight
        )
        penalty += chord_pressure * costs.chord_pressure_weight
        score.details.append(
            f"ChordP={chord_pressure:.2f} "
            f"(+{chord_pressure * costs.chord_pressure_weight:.1f}) "
            f"[span={span}/{span_limit},maxGap={inner_gap}/{costs.chord_inner_gap_limit},"
            f"drift={drift:.1f}/{costs.chord_drift_limit}]"
        )
        if chord_pressure > costs.chord_orphan_limit:
            score.orphan_triggers.append("Implausible chord context.")

    path = _clamp(leap_prev / max(1, large_leap), 0, 3) * _clamp(
        leap_next / max(1, large_leap), 0, 3
    )
    penalty += path * costs.path_distortion_weight
    score.details.append(f"PathP={path:.2f} (+{path * costs.path_distortion_weight:.1f})")
    if path > costs.path_orphan_limit:
        score.orphan_triggers.append("Path distortion would be excessive.")

    soft_range = max(1, soft_margin - margin)

    # Crossing guard at the note onset against the adjacent voices
    if voice > 0:
        upper = _sounding_at(voice_tracks[voice - 1], note.onset)
        if upper is not None:
            if note.pitch >= upper.pitch - margin:
                score.orphan_triggers.append(
                    f"Near-hard crossing against upper voice ({get_voice_label(voice - 1, total)})."
                )
            elif note.pitch >= upper.pitch - soft_margin:
                distance = (upper.pitch - margin) - note.pitch
                norm = _clamp(1 - distance / soft_range, 0, 1)
                pressure = costs.near_crossing_base + norm**2 * costs.near_crossing_scale
                penalty += pressure
                score.details.append(f"Near Cross Up (+{pressure:.1f})")

    if voice < total - 1:
        lower = _sounding_at(voice_tracks[voice + 1], note.onset)
        if lower is not None:
            if note.pitch <= lower.pitch + margin:
                score.orphan_triggers.append(
                    f"Near-hard crossing against lower voice ({get_voice_label(voice + 1, total)})."
                )
            elif note.pitch <= lower.pitch + soft_margin:
                distance = note.pitch - (lower.pitch + margin)
                norm = _clamp(1 - distance / soft_range, 0, 1)
                pressure = costs.near_crossing_base + norm**2 * costs.near_crossing_scale
                penalty += pressure
                score.details.append(f"Near Cross Down (+{pressure:.1f})")

    # Clearance against adjacent voices over the whole note span
    if voice > 0:
        clearances = [
            n.pitch - note.pitch
            for n in voice_tracks[voice - 1]
            if n.onset < note.end and n.end > note.onset
        ]
        if clearances and min(clearances) < soft_margin:
            norm = _clamp(1 - (min(clearances) - margin) / soft_range, 0, 1)
            pressure = costs.span_crossing_base + norm**2 * costs.span_crossing_scale
            penalty += pressure
            score.details.append(f"Span Cross Up (+{pressure:.1f})")

    if voice < total - 1:
        clearances = [
            note.pitch - n.pitch
            for n in voice_tracks[voice + 1]
            if n.onset < note.end and n.end > note.onset
        ]
        if clearances and min(clearances) < soft_margin:
            norm = _clamp(1 - (min(clearances) - margin) / soft_range, 0, 1)
            pressure = costs.span_crossing_base + norm**2 * costs.span_crossing_scale
            penalty += pressure
            score.details.append(f"Span Cross Down (+{pressure:.1f})")

    score.cost += penalty
    return score


def _assign_anchors(
    slices: list[DensitySlice],
    target: int,
    measure_ticks: int,
    merge_gap: float,
    voice_tracks: list[list[Note]],
    result: VoiceDistributionResult,
) -> None:
    areas = find_areas_at_density(slices, target, merge_gap)
    for area in areas:
        if area.length < measure_ticks:
            continue
        for s in area.slices:
            if s.density < target:
                continue
            ranked = sorted(s.active, key=lambda n: -n.pitch)
            for rank, note in enumerate(ranked[:target]):
                if note.id in result.voice_index:
                    continue
                voice_tracks[rank].append(note)
                result.voice_index[note.id] = rank
                label = get_voice_label(rank, target)
                result.explanations[note.id] = VoiceExplanation(
                    phase=PHASE_ANCHOR,
                    text=f"Full density block. Assigned to {label} (rank {rank}).",
                    assigned_voice=rank,
                    winner=rank,
                )


def distribute_to_voices(
    notes: list[Note],
    params: VoiceSeparationParams | None = None,
    ppq: int = 480,
    costs: VoiceCostParams | None = None,
) -> VoiceDistributionResult:
    """Distribute notes into voices, orphaning notes no voice can hold.

    Args:
        notes: Notes in any order.
        params: Voice separation options.
        ppq: Ticks per quarter note.
        costs: Cost-function constants.

    Returns:
        VoiceDistributionResult with voices ordered from highest (0) to
        lowest, orphans, and an explanation per note id.
    """
    params = params or VoiceSeparationParams()
    costs = costs or VoiceCostParams()
    if not notes:
        return VoiceDistributionResult()

    ordered = assign_note_ids(notes)
    measure_ticks = ticks_per_measure(ppq, params.time_signature)
    merge_gap = ppq / 2

    slices = build_density_slices(ordered)
    if max((s.density for s in slices), default=0) == 0:
        return VoiceDistributionResult(
            voices=[ordered],
            voice_index={n.id: 0 for n in ordered},
            target_voice_count=1,
        )

    target = find_target_voice_count(slices, measure_ticks, merge_gap)
    if params.max_voices > 0:
        target = params.max_voices

    voice_tracks: list[list[Note]] = [[] for _ in range(target)]
    result = VoiceDistributionResult(target_voice_count=target)

    _assign_anchors(slices, target, measure_ticks, merge_gap, voice_tracks, result)

    remaining = [n for n in ordered if n.id not in result.voice_index]
    orphans: list[Note] = []
    for i, note in enumerate(remaining):
        forms_phrase = _forms_phrase(remaining, i, measure_ticks, costs.lookahead_notes)
        cost_log: list[VoiceCostEntry] = []
        best_voice = -1
        best_cost = math.inf

        for v in range(target):
            label = get_voice_label(v, target)
            if params.disable_chords and _overlaps_voice(
                voice_tracks[v], note, params.overlap_tolerance
            ):
                cost_log.append(
                    VoiceCostEntry(voice=label, status="excluded", details="Overlap")
                )
                continue

            score = score_voice(
                note, v, voice_tracks, forms_phrase, ppq, measure_ticks, params, costs
            )
            if score.orphan_triggers:
                cost_log.append(
                    VoiceCostEntry(
                        voice=label,
                        status="orphan",
                        details=" | ".join(score.orphan_triggers),
                    )
                )
                continue

            cost_log.append(
                VoiceCostEntry(
                    voice=label, cost=round(score.cost, 1), details=", ".join(score.details)
                )
            )
            if score.cost < best_cost:
                best_cost = score.cost
                best_voice = v

        if best_voice != -1 and best_cost <= params.orphan_threshold:
            voice_tracks[best_voice].append(note)
            result.voice_index[note.id] = best_voice
            result.explanations[note.id] = VoiceExplanation(
                phase=PHASE_GAP_FILL,
                text="Cost minimization.",
                assigned_voice=best_voice,
                winner=best_voice,
                costs=cost_log,
            )
            continue

        if best_voice == -1:
            reason = "Forced orphan: no voice can take the note without breaking continuity, crossing or chord constraints."
        else:
            reason = f"Forced orphan: best continuity cost too high ({best_cost:.1f})."
        orphans.append(note)
        result.voice_index[note.id] = -1
        result.explanations[note.id] = VoiceExplanation(
            phase=PHASE_ORPHAN,
            text=reason,
            winner=best_voice,
            costs=cost_log,
            path_independent=True,
            excluded_from_continuity=True,
        )

    result.voices = [sorted(track, key=lambda n: n.onset) for track in voice_tracks]
    result.orphans = sorted(orphans, key=lambda n: n.onset)
    logger.debug(
        f"Distributed {len(ordered)} notes into {target} voices with {len(orphans)} orphans"
    )
    return result
