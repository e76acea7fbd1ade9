"""Rhythmic grid utilities.

Converts note values such as ``"1/16"`` or ``"1/8t"`` into tick quanta and
snaps tick positions onto those grids. Rounding is always half-up so a note
exactly between two grid points lands on the later one, independent of the
parity of the grid index.
"""

import math

from midi_annotator.models import RhythmRule

# Note value denominator -> length in quarter notes
NOTE_VALUE_TO_GRID = {
    "1/1": 4.0,
    "1/2": 2.0,
    "1/4": 1.0,
    "1/8": 0.5,
    "1/16": 0.25,
    "1/32": 0.125,
    "1/64": 0.0625,
}

TUPLET_RATIOS = {
    "t": 2.0 / 3.0,
    "q": 4.0 / 5.0,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always rounding up."""
    return int(math.floor(value + 0.5))


def get_quantization_tick_value(note_value: str, ppq: int) -> int:
    """Convert a note value to a grid quantum in ticks.

    Args:
        note_value: Note value such as "1/16", "1/8t" (triplet) or
            "1/16q" (quintuplet). "off" disables the grid.
        ppq: Ticks per quarter note.

    Returns:
        The grid quantum in ticks, or 0 for "off" and unknown values.
    """
    if not note_value or note_value.lower() == "off":
        return 0

    ratio = 1.0
    base = note_value
    suffix = note_value[-1]
    if suffix in TUPLET_RATIOS:
        ratio = TUPLET_RATIOS[suffix]
        base = note_value[:-1]

    quarters = NOTE_VALUE_TO_GRID.get(base)
    if quarters is None:
        return 0
    return max(1, round_half_up(ppq * quarters * ratio))


def get_grid_quantum(ppq: int, rule: RhythmRule) -> int:
    """Tick quantum of a rhythm rule, or 0 if the rule is disabled."""
    if not rule.enabled:
        return 0
    return get_quantization_tick_value(rule.min_note_value, ppq)


def ticks_per_measure(ppq: int, time_signature: tuple[int, int] = (4, 4)) -> int:
    """Length of one measure in ticks for the given time signature."""
    numerator, denominator = time_signature
    return round_half_up(ppq * numerator * (4 / max(1, denominator)))


def snap_to_grid(ticks: int, quantum: int) -> int:
    """Snap a tick position to the nearest grid point (half-up)."""
    if quantum <= 0:
        return ticks
    return round_half_up(ticks / quantum) * quantum


def snap_duration(duration: int, quantum: int) -> int:
    """Snap a duration to the grid, never shorter than one quantum."""
    if quantum <= 0:
        return max(1, duration)
    return max(quantum, snap_to_grid(duration, quantum))
