"""Core domain models for MIDI note annotation."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RhythmFamily(str, Enum):
    """Rhythmic grid family a rule snaps to."""

    SIMPLE = "Simple"
    TRIPLE = "Triple"
    QUINTUPLE = "Quintuple"


class ShadowConfidence(Enum):
    """How sure Pass 1 of the shadow quantizer is about its best candidate.

    Higher values mean more certainty. The ordering is used when comparing
    confidence classes, the ``label`` is the display form stored on decisions.
    """

    CERTAIN = 3
    WEAK_PRIMARY = 2
    AMBIGUOUS = 1

    @property
    def label(self) -> str:
        return _CONFIDENCE_LABELS[self]


_CONFIDENCE_LABELS = {
    ShadowConfidence.CERTAIN: "Certain",
    ShadowConfidence.WEAK_PRIMARY: "Weak_Primary",
    ShadowConfidence.AMBIGUOUS: "Ambiguous",
}


class OrnamentClass(str, Enum):
    """Ornament figures recognised by the detector."""

    GRACE_GROUP = "grace_group"
    MORDENT = "mordent"
    TURN = "turn"
    TRILL = "trill"


class ConflictType(str, Enum):
    """Conflicts the shadow quantizer reports on a decision."""

    UNISON_OVERLAP = "type1_unison_overlap"
    POLYPHONY_BLIP = "type2_polyphony_blip"
    CONTEXTUAL_RHYTHM = "type3_contextual_rhythm"


class Note(BaseModel):
    """A single symbolic note with timing in MIDI ticks.

    Notes are immutable; every stage returns new copies (via ``model_copy``)
    instead of editing the input. The ``id`` is the stable identity used to
    correlate annotations across the pipeline and is filled in by
    :func:`midi_annotator.note_utils.assign_note_ids` when absent.

    Attributes:
        pitch: MIDI note number (0-127, where 60 is middle C).
        onset: Start time in MIDI ticks (non-negative).
        duration: Duration in MIDI ticks (positive).
        velocity: Normalised velocity (0.0-1.0).
        id: Stable identity, or None if not yet assigned.
    """

    model_config = ConfigDict(frozen=True)

    pitch: int = Field(..., ge=0, le=127, description="MIDI note number (0-127)")
    onset: int = Field(..., ge=0, description="Start time in MIDI ticks")
    duration: int = Field(..., ge=1, description="Duration in MIDI ticks")
    velocity: float = Field(0.8, ge=0.0, le=1.0, description="Normalised velocity")
    id: str | None = Field(None, description="Stable note identity")

    @property
    def end(self) -> int:
        """Tick at which the note is released."""
        return self.onset + self.duration

    @property
    def name(self) -> str:
        """Pitch name with octave (e.g. "C4")."""
        from midi_annotator.note_utils import get_key_name

        return get_key_name(self.pitch)


class RhythmRule(BaseModel):
    """One rhythmic grid the shadow quantizer may snap to.

    ``min_note_value`` is a note value such as ``"1/16"``; a ``t`` suffix
    marks a triplet value (``"1/8t"``) and ``q`` a quintuplet value
    (``"1/16q"``). ``"off"`` disables the grid regardless of ``enabled``.

    Attributes:
        enabled: Whether the rule takes part in quantization.
        family: Rhythm family the grid belongs to.
        min_note_value: Shortest note value allowed by the grid.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(False, description="Enable this rhythm grid")
    family: RhythmFamily = Field(RhythmFamily.SIMPLE, description="Rhythm family")
    min_note_value: str = Field(
        "1/16",
        pattern=r"^(off|1/(1|2|4|8|16|32|64)[tq]?)$",
        description="Minimum note value of the grid",
    )
