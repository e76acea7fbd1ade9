"""Quantization diagnostics.

Helpers that describe how well a set of notes fits a rhythm grid and what a
quantization run changed. None of them modify notes.
"""

import numpy as np

from midi_annotator.models import (
    Note,
    QuantizationResult,
    QuantizationWarning,
    RhythmRule,
    TransformationStats,
)
from midi_annotator.note_utils import assign_note_ids
from midi_annotator.rhythm import get_grid_quantum, round_half_up, ticks_per_measure


def calculate_grid_alignment(notes: list[Note], grid_ticks: int) -> float:
    """Compute the percentage of onsets lying on a grid.

    Args:
        notes: Notes to inspect.
        grid_ticks: Grid quantum in ticks.

    Returns:
        A float in [0.0, 100.0]: the share of onsets within 5% of a quantum
        from the nearest grid point. Returns 0.0 if ``notes`` is empty and
        100.0 if the grid is disabled.
    """
    if not notes:
        return 0.0
    if grid_ticks <= 0:
        return 100.0

    onsets = np.array([n.onset for n in notes])
    dist = onsets % grid_ticks
    deviation = np.minimum(dist, grid_ticks - dist)
    on_grid = int(np.count_nonzero(deviation < grid_ticks * 0.05))
    return on_grid / len(notes) * 100.0


def format_position(tick: int, ppq: int, time_signature: tuple[int, int] = (4, 4)) -> str:
    """Human-readable "measure:beat" position of a tick (both 1-based)."""
    measure = ticks_per_measure(ppq, time_signature)
    beat = max(1, round_half_up(ppq * 4 / max(1, time_signature[1])))
    bar_index, within = divmod(tick, measure)
    return f"{bar_index + 1}:{within // beat + 1}"


def get_quantization_warning(
    notes: list[Note],
    ppq: int,
    rule: RhythmRule,
    time_signature: tuple[int, int] = (4, 4),
) -> QuantizationWarning | None:
    """Report notes that a grid would clamp or reduce to micro notes.

    A note is clamped when its duration rounds below one quantum (and is
    therefore held at the minimum grid value). It is a micro note when the
    rounded duration is shorter than ``ppq / 32``.

    Args:
        notes: Notes to inspect.
        ppq: Ticks per quarter note.
        rule: Rhythm rule defining the grid.
        time_signature: Meter used to format positions.

    Returns:
        A QuantizationWarning, or None if the grid is disabled or no note
        is affected.
    """
    quantum = get_grid_quantum(ppq, rule)
    if quantum <= 0:
        return None

    clamped = 0
    micro = 0
    micro_locations: list[str] = []
    micro_limit = ppq // 32
    for note in notes:
        rounded = round_half_up(note.duration / quantum) * quantum
        if rounded < quantum:
            clamped += 1
        if rounded < micro_limit:
            micro += 1
            location = f"{note.name} at {format_position(note.onset, ppq, time_signature)}"
            if location not in micro_locations:
                micro_locations.append(location)

    if clamped == 0 and micro == 0:
        return None

    message = ""
    if micro:
        message += f"{micro} tiny notes detected. "
    if clamped:
        message += f"{clamped} notes snapped to min grid."

    return QuantizationWarning(
        message=message.strip(),
        details=[f"[Micro] {location}" for location in micro_locations],
        clamped_notes=clamped,
        micro_notes=micro,
    )


def calculate_transformation_stats(
    notes: list[Note],
    result: QuantizationResult,
    ppq: int,
    rule: RhythmRule,
) -> TransformationStats:
    """Compare notes before and after quantization.

    Notes are matched by id, so ``notes`` should be the exact input handed
    to the quantizer (ids are assigned the same way if missing).

    Args:
        notes: Notes before quantization.
        result: Output of the shadow quantizer.
        ppq: Ticks per quarter note.
        rule: Primary rhythm rule; its quantum is the alignment grid.

    Returns:
        TransformationStats with counts, mean shift and grid alignment.
    """
    before = {n.id: n for n in assign_note_ids(notes)}
    grid = get_grid_quantum(ppq, rule) or max(1, ppq // 4)

    quantized = 0
    changed = 0
    extended = 0
    shortened = 0
    total_shift = 0
    for note in result.notes:
        original = before.get(note.id)
        if original is None:
            continue
        shift = abs(note.onset - original.onset)
        if shift > 0:
            quantized += 1
            total_shift += shift
        if note.duration != original.duration:
            changed += 1
            if note.duration > original.duration:
                extended += 1
            else:
                shortened += 1

    return TransformationStats(
        total_notes_input=len(before),
        total_notes_output=len(result.notes),
        notes_quantized=quantized,
        notes_duration_changed=changed,
        notes_extended=extended,
        notes_shortened=shortened,
        avg_shift_ticks=total_shift / quantized if quantized else 0.0,
        input_grid_alignment=calculate_grid_alignment(list(before.values()), grid),
        output_grid_alignment=calculate_grid_alignment(result.notes, grid),
    )
