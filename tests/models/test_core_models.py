import pytest
from pydantic import ValidationError

from midi_annotator.models import (
    ConflictType,
    Note,
    RhythmFamily,
    RhythmRule,
    ShadowConfidence,
)


def test_note_properties(valid_note):
    assert valid_note.end == 480
    assert valid_note.name == "C4"
    assert valid_note.velocity == pytest.approx(0.8)
    assert valid_note.id is None


def test_note_is_frozen(valid_note):
    with pytest.raises(ValidationError):
        valid_note.onset = 10


def test_note_copy_keeps_original(valid_note):
    moved = valid_note.model_copy(update={"onset": 120})
    assert moved.onset == 120
    assert valid_note.onset == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"pitch": -1, "onset": 0, "duration": 1},
        {"pitch": 128, "onset": 0, "duration": 1},
        {"pitch": 60, "onset": -1, "duration": 1},
        {"pitch": 60, "onset": 0, "duration": 0},
        {"pitch": 60, "onset": 0, "duration": 1, "velocity": 1.5},
    ],
)
def test_note_validation_raises(kwargs):
    with pytest.raises(ValidationError):
        Note(**kwargs)


def test_rhythm_rule_defaults():
    rule = RhythmRule()
    assert rule.enabled is False
    assert rule.family is RhythmFamily.SIMPLE
    assert rule.min_note_value == "1/16"


def test_rhythm_rule_valid(valid_rhythm_rule):
    assert valid_rhythm_rule.enabled
    assert valid_rhythm_rule.min_note_value == "1/8t"


@pytest.mark.parametrize("value", ["1/3", "1/16x", "16", "", "1/128"])
def test_rhythm_rule_rejects_bad_note_value(value):
    with pytest.raises(ValidationError):
        RhythmRule(min_note_value=value)


def test_confidence_labels_and_order():
    assert ShadowConfidence.CERTAIN.label == "Certain"
    assert ShadowConfidence.WEAK_PRIMARY.label == "Weak_Primary"
    assert ShadowConfidence.AMBIGUOUS.label == "Ambiguous"
    # Higher value means more certain
    assert ShadowConfidence.CERTAIN.value > ShadowConfidence.WEAK_PRIMARY.value
    assert ShadowConfidence.WEAK_PRIMARY.value > ShadowConfidence.AMBIGUOUS.value


def test_conflict_type_values():
    assert ConflictType.UNISON_OVERLAP == "type1_unison_overlap"
    assert ConflictType.POLYPHONY_BLIP == "type2_polyphony_blip"
    assert ConflictType.CONTEXTUAL_RHYTHM == "type3_contextual_rhythm"
