import pytest

from midi_annotator.models import Note, RhythmFamily, RhythmRule


@pytest.fixture
def ppq():
    return 480


@pytest.fixture
def simple_rule():
    return RhythmRule(enabled=True, family=RhythmFamily.SIMPLE, min_note_value="1/16")


@pytest.fixture
def triplet_rule():
    return RhythmRule(enabled=True, family=RhythmFamily.TRIPLE, min_note_value="1/8t")


@pytest.fixture
def triplet_context_notes():
    # Straight sixteenths with one slightly early, short note at tick 320
    return [
        Note(pitch=60, onset=0, duration=120),
        Note(pitch=62, onset=120, duration=120),
        Note(pitch=64, onset=240, duration=120),
        Note(pitch=65, onset=320, duration=110),
        Note(pitch=67, onset=480, duration=120),
    ]


@pytest.fixture
def unison_overlap_notes():
    # Same pitch, overlapping 0-360 vs 240-600
    return [
        Note(pitch=60, onset=0, duration=360),
        Note(pitch=60, onset=240, duration=360),
    ]


@pytest.fixture
def grace_notes():
    return [
        Note(pitch=61, onset=0, duration=40),
        Note(pitch=60, onset=40, duration=240),
    ]


@pytest.fixture
def orphan_notes():
    # The middle note overlaps the first and cannot share a monophonic voice
    return [
        Note(pitch=60, onset=0, duration=480),
        Note(pitch=64, onset=240, duration=480),
        Note(pitch=67, onset=960, duration=240),
    ]


@pytest.fixture
def chorale_notes():
    # Two measures of sustained four-part harmony followed by a lone melody note
    notes = []
    for onset in (0, 960, 1920, 2880):
        for pitch in (72, 67, 64, 48):
            notes.append(Note(pitch=pitch, onset=onset, duration=960))
    notes.append(Note(pitch=74, onset=3840, duration=480))
    return notes


@pytest.fixture
def mixed_grid_unison_notes():
    # A triplet-grid note overlapped by a same-pitch note on the sixteenth grid
    return [
        Note(pitch=60, onset=160, duration=320),
        Note(pitch=60, onset=360, duration=120),
    ]
