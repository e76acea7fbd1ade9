import pytest

from midi_annotator.models import Note, RhythmRule


@pytest.fixture
def valid_note():
    return Note(pitch=60, onset=0, duration=480)


@pytest.fixture
def valid_rhythm_rule():
    return RhythmRule(enabled=True, min_note_value="1/8t")
