"""Models for representing pipeline stage results and annotations.

This module contains Pydantic models that encapsulate the output of each
annotation stage. Annotations are kept in side tables keyed by note id
rather than written onto the notes, so a note used as input to a stage is
never confused with the record describing what the stage decided about it.
"""

from pydantic import BaseModel, Field

from midi_annotator.models.core_models import (
    ConflictType,
    Note,
    OrnamentClass,
    RhythmFamily,
    ShadowConfidence,
)


class OrnamentTimingBounds(BaseModel):
    """Time window covered by an ornament figure.

    Attributes:
        start_tick: Onset of the earliest member note.
        end_tick: Release of the latest member note.
        principal_tick: Onset of the principal note.
    """

    start_tick: int = Field(..., ge=0)
    end_tick: int = Field(..., ge=0)
    principal_tick: int = Field(..., ge=0)


class OrnamentHypothesis(BaseModel):
    """One possible reading of a group of notes as an ornament.

    Attributes:
        ornament_class: Figure the notes were matched against.
        principal_note_ref: Id of the note the figure decorates.
        member_note_ids: Ids of the ornamental notes themselves.
        timing_bounds: Window covered by the member notes.
        confidence: Score in [0, 1]; higher wins during selection.
        ambiguity_tags: Tags describing competing readings and timing issues.
    """

    ornament_class: OrnamentClass
    principal_note_ref: str
    member_note_ids: list[str] = Field(default_factory=list)
    timing_bounds: OrnamentTimingBounds
    confidence: float = Field(..., ge=0.0, le=1.0)
    ambiguity_tags: list[str] = Field(default_factory=list)


class OrnamentAnnotation(BaseModel):
    """Ornament information attached to a single note.

    Attributes:
        note_id: Id of the annotated note.
        is_ornament: The note is a member of a selected ornament.
        has_ornaments: The note is the principal of a selected ornament.
        ornament_class: Class of the selected ornament the note belongs to.
        principal_note_ref: Principal of that ornament.
        principal_pitch: Pitch of the principal (members only).
        principal_onset: Onset of the principal (members only).
        timing_bounds: Window of the selected ornament.
        confidence: Confidence of the selected ornament.
        ambiguity_tags: Tags of the selected ornament.
        hypotheses: Every hypothesis involving this note in the same role.
    """

    note_id: str
    is_ornament: bool = False
    has_ornaments: bool = False
    ornament_class: OrnamentClass | None = None
    principal_note_ref: str | None = None
    principal_pitch: int | None = None
    principal_onset: int | None = None
    timing_bounds: OrnamentTimingBounds | None = None
    confidence: float | None = None
    ambiguity_tags: list[str] = Field(default_factory=list)
    hypotheses: list[OrnamentHypothesis] = Field(default_factory=list)


class OrnamentResult(BaseModel):
    """Results from the ornament detection stage.

    Attributes:
        notes: Input notes in canonical order, each with an id.
        hypotheses: All hypotheses, sorted by confidence descending.
        selected: Non-overlapping subset chosen by the greedy selector.
        annotations: Per-note annotations keyed by note id.
    """

    notes: list[Note] = Field(default_factory=list)
    hypotheses: list[OrnamentHypothesis] = Field(default_factory=list)
    selected: list[OrnamentHypothesis] = Field(default_factory=list)
    annotations: dict[str, OrnamentAnnotation] = Field(default_factory=dict)

    @property
    def ornament_note_ids(self) -> set[str]:
        """Ids of every note flagged as an ornament member."""
        return {
            note_id
            for note_id, annotation in self.annotations.items()
            if annotation.is_ornament
        }


class ObjectiveBreakdown(BaseModel):
    """Weighted Pass 2 objective for one candidate.

    Attributes:
        note_retention: Always 0; notes are never deleted.
        ordering: Penalty for moving before the previous resolved onset.
        movement: Onset and duration movement penalty.
        overlap_and_blip: Unison overlap and polyphony blip penalty.
        contextual_rhythm: Rhythm-family mismatch with the neighborhood.
        confidence_aware_edit: Cost of deviating from the Pass 1 choice.
        total: Sum of all terms.
    """

    note_retention: float = 0.0
    ordering: float = 0.0
    movement: float = 0.0
    overlap_and_blip: float = 0.0
    contextual_rhythm: float = 0.0
    confidence_aware_edit: float = 0.0
    total: float = 0.0


class Accommodation(BaseModel):
    """Shortening applied to resolve a same-pitch overlap.

    Attributes:
        note_id: Id of the note that was shortened.
        shortened_from: Duration before shortening.
        shortened_to: Duration after shortening.
        reason: Human-readable explanation.
    """

    note_id: str
    shortened_from: int = Field(..., ge=1)
    shortened_to: int = Field(..., ge=1)
    reason: str = ""


class CandidateScore(BaseModel):
    """A grid candidate as evaluated by Pass 2.

    Attributes:
        family: Rhythm family of the candidate grid.
        note_value: Minimum note value of the candidate grid.
        onset_ticks: Snapped onset.
        duration_ticks: Snapped duration after any accommodation.
        onset_error: Distance between original and snapped onset.
        duration_error: Distance between original and snapped duration.
        total_score: Objective total (lower is better).
        objective: Full objective breakdown.
        conflict_types: Conflicts detected for this candidate.
    """

    family: RhythmFamily
    note_value: str
    onset_ticks: int
    duration_ticks: int
    onset_error: int = 0
    duration_error: int = 0
    total_score: float = 0.0
    objective: ObjectiveBreakdown = Field(default_factory=ObjectiveBreakdown)
    conflict_types: list[ConflictType] = Field(default_factory=list)


class ShadowDecision(BaseModel):
    """Provenance of one note's quantization.

    Attributes:
        note_id: Id of the quantized note.
        original_onset: Onset before quantization.
        original_duration: Duration before quantization.
        confidence: Pass 1 confidence class.
        pass1_best_family: Family of the locally best Pass 1 candidate.
        selected_family: Family of the Pass 2 winner.
        selected_note_value: Note value of the Pass 2 winner.
        selected_onset_ticks: Resolved onset.
        selected_duration_ticks: Resolved duration.
        objective_breakdown: Objective of the winner.
        conflict_types: Conflicts detected for the winner.
        accommodation_applied: First shortening performed by the winner, if
            any.
        accommodations: Every shortening performed by the winner, in the
            order the overlapping notes were resolved.
        alternatives: Every candidate evaluated, ranked by total score.
    """

    note_id: str
    original_onset: int
    original_duration: int
    confidence: ShadowConfidence
    pass1_best_family: RhythmFamily
    selected_family: RhythmFamily
    selected_note_value: str
    selected_onset_ticks: int
    selected_duration_ticks: int
    objective_breakdown: ObjectiveBreakdown
    conflict_types: list[ConflictType] = Field(default_factory=list)
    accommodation_applied: Accommodation | None = None
    accommodations: list[Accommodation] = Field(default_factory=list)
    alternatives: list[CandidateScore] = Field(default_factory=list)

    @property
    def confidence_label(self) -> str:
        return self.confidence.label


class QuantizationResult(BaseModel):
    """Results from the shadow quantization stage.

    Attributes:
        notes: Resolved notes in processing order.
        decisions: Shadow decisions keyed by note id; empty on passthrough.
    """

    notes: list[Note] = Field(default_factory=list)
    decisions: dict[str, ShadowDecision] = Field(default_factory=dict)


class VoiceCostEntry(BaseModel):
    """Cost of placing a note in one voice.

    Attributes:
        voice: Voice label (e.g. "S", "A").
        cost: Total cost, or None if the voice was excluded or vetoed.
        status: "scored", "excluded" (strict overlap) or "orphan" (vetoed).
        details: Breakdown of the cost terms or the veto reasons.
    """

    voice: str
    cost: float | None = None
    status: str = "scored"
    details: str = ""


class VoiceExplanation(BaseModel):
    """Why a note ended up in its voice (or among the orphans).

    Attributes:
        phase: Assignment phase that placed the note.
        text: Short description of the decision.
        assigned_voice: Voice index, or -1 for orphans.
        winner: Lowest-cost voice index, or -1 when every voice was vetoed.
        costs: Per-voice cost log (gap filling and orphans only).
        path_independent: Orphans do not affect any voice's trajectory.
        excluded_from_continuity: Orphans are skipped when scoring later notes.
    """

    phase: str
    text: str = ""
    assigned_voice: int = -1
    winner: int = -1
    costs: list[VoiceCostEntry] = Field(default_factory=list)
    path_independent: bool = False
    excluded_from_continuity: bool = False


class VoiceDistributionResult(BaseModel):
    """Voice separation output.

    Attributes:
        voices: Notes of each voice, sorted by onset (voice 0 is the highest).
        orphans: Notes excluded from every voice, sorted by onset.
        explanations: Assignment explanations keyed by note id.
        voice_index: Voice index per note id (-1 for orphans).
        target_voice_count: Number of voices the distributor aimed for.
    """

    voices: list[list[Note]] = Field(default_factory=list)
    orphans: list[Note] = Field(default_factory=list)
    explanations: dict[str, VoiceExplanation] = Field(default_factory=dict)
    voice_index: dict[str, int] = Field(default_factory=dict)
    target_voice_count: int = 0

    @property
    def note_count(self) -> int:
        """Total notes across voices and orphans."""
        return sum(len(voice) for voice in self.voices) + len(self.orphans)


class PipelineResult(BaseModel):
    """Outputs of every stage of the complete pipeline.

    Attributes:
        ornaments: Ornament detection result.
        quantization: Shadow quantization result.
        voices: Voice separation result.
        notes: Final annotated notes in canonical order.
    """

    ornaments: OrnamentResult = Field(default_factory=OrnamentResult)
    quantization: QuantizationResult = Field(default_factory=QuantizationResult)
    voices: VoiceDistributionResult = Field(default_factory=VoiceDistributionResult)
    notes: list[Note] = Field(default_factory=list)


class QuantizationWarning(BaseModel):
    """Notes that the active grid cannot represent faithfully.

    Attributes:
        message: One-line summary.
        details: One entry per micro note, naming its pitch and position.
        clamped_notes: Notes that would round below one grid quantum.
        micro_notes: Notes that would end up shorter than ``ppq / 32``.
    """

    message: str
    details: list[str] = Field(default_factory=list)
    clamped_notes: int = 0
    micro_notes: int = 0


class TransformationStats(BaseModel):
    """Before/after comparison of a quantization run.

    Attributes:
        total_notes_input: Notes handed to the quantizer.
        total_notes_output: Notes returned by the quantizer.
        notes_quantized: Notes whose onset moved.
        notes_duration_changed: Notes whose duration changed.
        notes_extended: Notes that became longer.
        notes_shortened: Notes that became shorter.
        avg_shift_ticks: Mean onset shift over the moved notes.
        input_grid_alignment: Percentage of input onsets on the grid.
        output_grid_alignment: Percentage of output onsets on the grid.
    """

    total_notes_input: int = 0
    total_notes_output: int = 0
    notes_quantized: int = 0
    notes_duration_changed: int = 0
    notes_extended: int = 0
    notes_shortened: int = 0
    avg_shift_ticks: float = 0.0
    input_grid_alignment: float = Field(0.0, ge=0.0, le=100.0)
    output_grid_alignment: float = Field(0.0, ge=0.0, le=100.0)
