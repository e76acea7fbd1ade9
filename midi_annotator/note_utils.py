"""Note identity, ordering and naming helpers.

Every stage of the pipeline relies on the same canonical order (onset,
then pitch) and on stable note ids, so both are defined once here.
"""

import music21

from midi_annotator.models import Note


def sort_notes(notes: list[Note]) -> list[Note]:
    """Return notes in canonical order: by onset, then by pitch.

    The sort is stable, so notes sharing onset and pitch keep their input order.
    """
    return sorted(notes, key=lambda n: (n.onset, n.pitch))


def assign_note_ids(notes: list[Note]) -> list[Note]:
    """Give every note a stable id, in canonical order.

    Notes that already carry an id keep it. Missing ids are derived from
    onset, pitch and the note's index in canonical order, so the same input
    always yields the same ids.

    Args:
        notes: Notes in any order.

    Returns:
        A new list in canonical order where every note has an id.
    """
    result: list[Note] = []
    for index, note in enumerate(sort_notes(notes)):
        if note.id is None:
            note = note.model_copy(
                update={"id": f"n_{note.onset}_{note.pitch}_{index}"}
            )
        result.append(note)
    return result


def find_duplicate_ids(notes: list[Note]) -> list[str]:
    """Return ids that occur more than once, in first-seen order."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for note in notes:
        if note.id is None:
            continue
        if note.id in seen and note.id not in duplicates:
            duplicates.append(note.id)
        seen.add(note.id)
    return duplicates


def get_key_name(midi_note: int) -> str:
    """Convert a MIDI note number to a key name (e.g., "C4").

    Args:
        midi_note: MIDI note number (0–127).

    Returns:
        The pitch name with octave (e.g., "C4", "G#3").
    """
    p = music21.pitch.Pitch()
    p.midi = midi_note
    return p.nameWithOctave


def get_voice_label(index: int, total: int) -> str:
    """Short display label for a voice.

    Args:
        index: Voice index, or -1 for the orphan lane.
        total: Number of voices in the distribution.

    Returns:
        "Orph" for orphans, "Melody" for a single voice, SATB-style letters
        for two to four voices, and "V{index}" otherwise.
    """
    if index == -1:
        return "Orph"
    if total == 1:
        return "Melody"
    labels = {
        2: ["S", "B"],
        3: ["S", "T", "B"],
        4: ["S", "A", "T", "B"],
    }.get(total)
    if labels and 0 <= index < len(labels):
        return labels[index]
    return f"V{index}"
