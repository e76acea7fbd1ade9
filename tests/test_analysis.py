import pytest

from midi_annotator.analysis import (
    calculate_grid_alignment,
    calculate_transformation_stats,
    format_position,
    get_quantization_warning,
)
from midi_annotator.models import Note, RhythmRule
from midi_annotator.shadow_quantization import apply_shadow_quantization


def test_grid_alignment():
    notes = [Note(pitch=60, onset=t, duration=10) for t in (0, 120, 125, 60)]
    # 125 is within 5% of a 120-tick quantum, 60 is not
    assert calculate_grid_alignment(notes, 120) == pytest.approx(75.0)


def test_grid_alignment_edge_cases():
    assert calculate_grid_alignment([], 120) == 0.0
    assert calculate_grid_alignment([Note(pitch=60, onset=7, duration=1)], 0) == 100.0


@pytest.mark.parametrize(
    "tick,expected", [(0, "1:1"), (480, "1:2"), (2400, "2:2"), (1919, "1:4")]
)
def test_format_position(tick, expected):
    assert format_position(tick, 480) == expected


def test_quantization_warning(ppq, simple_rule):
    notes = [
        Note(pitch=60, onset=0, duration=40),
        Note(pitch=62, onset=480, duration=100),
    ]
    warning = get_quantization_warning(notes, ppq, simple_rule)
    assert warning is not None
    assert warning.clamped_notes == 1
    assert warning.micro_notes == 1
    assert warning.details == ["[Micro] C4 at 1:1"]
    assert warning.message == "1 tiny notes detected. 1 notes snapped to min grid."


def test_quantization_warning_none(ppq, simple_rule):
    notes = [Note(pitch=60, onset=0, duration=480)]
    assert get_quantization_warning(notes, ppq, simple_rule) is None
    assert get_quantization_warning(notes, ppq, RhythmRule(enabled=False)) is None


def test_transformation_stats(ppq, simple_rule, triplet_context_notes):
    result = apply_shadow_quantization(triplet_context_notes, ppq, simple_rule)
    stats = calculate_transformation_stats(triplet_context_notes, result, ppq, simple_rule)

    assert stats.total_notes_input == 5
    assert stats.total_notes_output == 5
    # Only the note at 320 moves (to 360) and grows from 110 to 120
    assert stats.notes_quantized == 1
    assert stats.avg_shift_ticks == pytest.approx(40)
    assert stats.notes_duration_changed == 1
    assert stats.notes_extended == 1
    assert stats.notes_shortened == 0
    assert stats.input_grid_alignment == pytest.approx(80.0)
    assert stats.output_grid_alignment == pytest.approx(100.0)
