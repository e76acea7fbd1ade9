import pytest

from midi_annotator.models import Note
from midi_annotator.note_utils import (
    assign_note_ids,
    find_duplicate_ids,
    get_key_name,
    get_voice_label,
    sort_notes,
)


def test_sort_notes_by_onset_then_pitch():
    notes = [
        Note(pitch=67, onset=100, duration=10),
        Note(pitch=64, onset=0, duration=10),
        Note(pitch=60, onset=100, duration=10),
    ]
    ordered = sort_notes(notes)
    assert [(n.onset, n.pitch) for n in ordered] == [(0, 64), (100, 60), (100, 67)]


def test_assign_note_ids_canonical_and_stable():
    notes = [
        Note(pitch=64, onset=120, duration=10),
        Note(pitch=60, onset=0, duration=10),
    ]
    first = assign_note_ids(notes)
    second = assign_note_ids(list(reversed(notes)))
    assert [n.id for n in first] == ["n_0_60_0", "n_120_64_1"]
    # Same ids regardless of input order
    assert [n.id for n in first] == [n.id for n in second]
    # Input notes are not mutated
    assert all(n.id is None for n in notes)


def test_assign_note_ids_keeps_existing():
    notes = [Note(pitch=60, onset=0, duration=10, id="melody-1")]
    assert assign_note_ids(notes)[0].id == "melody-1"


def test_find_duplicate_ids():
    notes = [
        Note(pitch=60, onset=0, duration=10, id="a"),
        Note(pitch=62, onset=10, duration=10, id="a"),
        Note(pitch=64, onset=20, duration=10, id="b"),
        Note(pitch=65, onset=30, duration=10),
    ]
    assert find_duplicate_ids(notes) == ["a"]


@pytest.mark.parametrize("midi,name", [(60, "C4"), (69, "A4"), (61, "C#4")])
def test_get_key_name(midi, name):
    assert get_key_name(midi) == name


@pytest.mark.parametrize(
    "index,total,label",
    [
        (-1, 4, "Orph"),
        (0, 1, "Melody"),
        (0, 2, "S"),
        (1, 2, "B"),
        (1, 3, "T"),
        (1, 4, "A"),
        (3, 4, "B"),
        (4, 5, "V4"),
    ],
)
def test_get_voice_label(index, total, label):
    assert get_voice_label(index, total) == label
