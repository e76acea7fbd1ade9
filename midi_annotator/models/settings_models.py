"""Parameter models for the annotation pipeline.

This module defines Pydantic models that encapsulate all configurable
parameters for each annotation stage. User-facing knobs (rhythm rules,
voice separation options) live next to the tuning constants of each
algorithm, so the cost functions can be adjusted and tested without
touching control flow.
"""

from pydantic import BaseModel, Field

from midi_annotator.models.core_models import RhythmFamily, RhythmRule


class OrnamentDetectionParams(BaseModel):
    """Thresholds for ornament detection, expressed in ticks.

    Usually built with :meth:`from_ppq`, which derives every window from the
    quarter-note length so that detection behaves the same at any resolution.

    Attributes:
        tq: Quarter-note length in ticks.
        ornament_max_span_ticks: Longest time window an ornament figure may span.
        grace_max_dur_ticks: Longest duration a grace note may have.
        attach_gap_ticks: Largest gap between a figure and its principal note,
            also the tolerance used for on-beat checks.
        neighbor_max_semitones: Largest neighbor interval inside a figure.
        family_mnv_ticks: Minimum note value of the active rhythm family.
        max_trill_notes: Optional cap on trill length (None = unbounded).
    """

    tq: int = Field(480, ge=1, description="Quarter-note length in ticks")
    ornament_max_span_ticks: int = Field(
        480, ge=1, description="Maximum ornament window in ticks"
    )
    grace_max_dur_ticks: int = Field(
        60, ge=1, description="Maximum grace note duration in ticks"
    )
    attach_gap_ticks: int = Field(
        30, ge=0, description="Maximum gap between figure and principal"
    )
    neighbor_max_semitones: int = Field(
        2, ge=1, le=12, description="Maximum neighbor distance in semitones"
    )
    family_mnv_ticks: int = Field(
        120, ge=1, description="Minimum note value of the active rhythm family"
    )
    max_trill_notes: int | None = Field(
        None, ge=4, description="Optional upper bound on trill length"
    )

    @classmethod
    def from_ppq(
        cls, ppq: int, family_mnv_ticks: int | None = None
    ) -> "OrnamentDetectionParams":
        """Build default detection parameters for a given resolution.

        Args:
            ppq: MIDI ticks per quarter note.
            family_mnv_ticks: Minimum note value of the active rhythm family in
                ticks. Defaults to a sixteenth note (``ppq / 4``).

        Returns:
            Parameters with the grace-note bound set to
            ``min(Tq/8, 0.5 * family_mnv_ticks)``.
        """
        tq = ppq
        mnv = family_mnv_ticks if family_mnv_ticks else round(tq / 4)
        return cls(
            tq=tq,
            ornament_max_span_ticks=tq,
            grace_max_dur_ticks=max(1, min(round(tq / 8), round(mnv / 2))),
            attach_gap_ticks=max(1, round(tq / 16)),
            neighbor_max_semitones=2,
            family_mnv_ticks=max(1, mnv),
        )


class ShadowQuantizerParams(BaseModel):
    """Weights of the shadow quantizer's Pass 1 tolerance and Pass 2 objective.

    Attributes:
        tolerance_factor: Fraction of the smallest quantum counted as "certain".
        tolerance_floor_ticks: Lower bound of the certainty tolerance.
        ordering_penalty: Penalty for landing before the previous resolved onset.
        movement_penalty: Flat penalty once onset/duration movement is excessive.
        duration_weight: Proportional duration penalty inside the allowed band.
        min_duration_ratio: Lower edge of the allowed duration ratio band.
        max_duration_ratio: Upper edge of the allowed duration ratio band.
        overlap_occurrence_penalty: Penalty per same-pitch overlap occurrence.
        overlap_fallback_penalty: Penalty when an overlap cannot be accommodated.
        blip_penalty_certain: Penalty per extra blip for a certain note.
        blip_penalty_uncertain: Penalty per extra blip for other notes.
        legato_overlap_factor: Fraction of the smallest quantum below which an
            overlap is articulation rather than polyphony.
        context_penalty_certain: Rhythm-family mismatch penalty, certain notes.
        context_penalty_uncertain: Rhythm-family mismatch penalty, other notes.
        context_radius: Neighborhood radius (notes) for the dominant family.
        edit_cost_certain: Cost of overriding a certain Pass 1 choice.
        edit_cost_weak_primary: Cost of overriding a weak-primary choice.
        edit_cost_ambiguous: Cost of overriding an ambiguous choice.
    """

    tolerance_factor: float = Field(0.15, ge=0.0, le=1.0)
    tolerance_floor_ticks: float = Field(5.0, ge=0.0)
    ordering_penalty: float = Field(200.0, ge=0.0)
    movement_penalty: float = Field(70.0, ge=0.0)
    duration_weight: float = Field(18.0, ge=0.0)
    min_duration_ratio: float = Field(0.5, gt=0.0, le=1.0)
    max_duration_ratio: float = Field(2.0, ge=1.0)
    overlap_occurrence_penalty: float = Field(10.0, ge=0.0)
    overlap_fallback_penalty: float = Field(90.0, ge=0.0)
    blip_penalty_certain: float = Field(80.0, ge=0.0)
    blip_penalty_uncertain: float = Field(55.0, ge=0.0)
    legato_overlap_factor: float = Field(0.5, ge=0.0, le=1.0)
    context_penalty_certain: float = Field(16.0, ge=0.0)
    context_penalty_uncertain: float = Field(8.0, ge=0.0)
    context_radius: int = Field(3, ge=0)
    edit_cost_certain: float = Field(35.0, ge=0.0)
    edit_cost_weak_primary: float = Field(14.0, ge=0.0)
    edit_cost_ambiguous: float = Field(4.0, ge=0.0)


class VoiceSeparationParams(BaseModel):
    """User-facing options for voice separation.

    Attributes:
        overlap_tolerance: Ticks of overlap ignored when testing for collisions.
        disable_chords: Strict monophony; a voice never holds overlapping notes.
        pitch_bias: Strength of the register tie-breaker (50 = neutral).
        max_voices: Fixed voice count, or 0 to derive it from note density.
        orphan_threshold: Cost above which a note is orphaned.
        time_signature: Meter as (numerator, denominator).
    """

    overlap_tolerance: int = Field(0, ge=0, description="Overlap tolerance in ticks")
    disable_chords: bool = Field(False, description="Strict monophony per voice")
    pitch_bias: int = Field(
        50, ge=0, le=100, description="Register continuity bias strength"
    )
    max_voices: int = Field(0, ge=0, le=16, description="Voice count override")
    orphan_threshold: float = Field(
        120.0, gt=0.0, description="Maximum cost before a note is orphaned"
    )
    time_signature: tuple[int, int] = Field(
        (4, 4), description="Time signature as (numerator, denominator)"
    )


class VoiceCostParams(BaseModel):
    """Constants of the voice gap-filling cost function.

    Grouped by cost term: leap notches, register zone, wake-up handling,
    chord plausibility, path distortion, crossing pressure and the orphan
    triggers that veto a voice outright.
    """

    m7_leap: int = Field(10, ge=1)
    m7_notch: float = Field(1.8, ge=0.0)
    octave_leap: int = Field(12, ge=1)
    octave_notch: float = Field(1.2, ge=0.0)
    above_octave_slope: float = Field(1.15, ge=0.0)
    wide_leap: int = Field(16, ge=1)
    wide_leap_notch: float = Field(2.4, ge=0.0)

    zone_top_pitch: float = Field(84.0, ge=0.0, le=127.0)
    zone_span: float = Field(36.0, ge=0.0)
    zone_weight: float = Field(0.05, ge=0.0)

    chord_addition_penalty: float = Field(10.0, ge=0.0)
    wake_blip_weight: float = Field(120.0, ge=0.0)
    late_wake_penalty: float = Field(18.0, ge=0.0)
    phrase_end_penalty: float = Field(5.0, ge=0.0)
    phrase_support_damping: float = Field(0.7, ge=0.0, le=1.0)
    lookahead_notes: int = Field(10, ge=1)
    missing_neighbor_measures: float = Field(3.0, ge=0.0)
    isolation_cap: float = Field(1.5, ge=0.0)

    chord_span_base: int = Field(12, ge=1)
    chord_span_per_note: int = Field(3, ge=0)
    chord_inner_gap_limit: int = Field(9, ge=1)
    chord_drift_limit: int = Field(7, ge=1)
    chord_span_weight: float = Field(0.55, ge=0.0)
    chord_spacing_weight: float = Field(0.25, ge=0.0)
    chord_drift_weight: float = Field(0.2, ge=0.0)
    chord_pressure_weight: float = Field(90.0, ge=0.0)

    path_distortion_weight: float = Field(20.0, ge=0.0)
    hard_crossing_margin: int = Field(1, ge=0)
    near_crossing_base: float = Field(8.0, ge=0.0)
    near_crossing_scale: float = Field(18.0, ge=0.0)
    span_crossing_base: float = Field(6.0, ge=0.0)
    span_crossing_scale: float = Field(14.0, ge=0.0)

    wake_orphan_limit: float = Field(0.95, ge=0.0)
    chord_orphan_limit: float = Field(0.9, ge=0.0)
    path_orphan_limit: float = Field(2.3, ge=0.0)

    leap_window: int = Field(8, ge=2)
    default_leap_scale: float = Field(7.0, ge=0.0)
    min_leap_scale: float = Field(5.0, ge=0.0)
    max_leap_scale: float = Field(11.0, ge=0.0)
    large_leap_factor: float = Field(2.2, ge=0.0)
    large_leap_min: int = Field(11, ge=1)
    large_leap_max: int = Field(16, ge=1)
    soft_crossing_min: int = Field(2, ge=1)
    soft_crossing_max: int = Field(5, ge=1)


class ProcessingParameters(BaseModel):
    """Complete configuration for the annotation pipeline.

    Aggregates the rhythm rules and every stage's parameter set, providing
    a single object that can be passed to the main pipeline function.

    Attributes:
        ppq: Ticks per quarter note of the source.
        primary_rhythm: Primary rhythm grid; disabling it skips quantization.
        secondary_rhythm: Optional competing rhythm grid.
        detect_ornaments: Whether to run ornament detection first.
        ornaments: Detection thresholds; derived from ``ppq`` when None.
        quantizer: Shadow quantizer weights.
        voices: Voice separation options.
        voice_costs: Voice cost-function constants.
    """

    ppq: int = Field(480, ge=1, description="Ticks per quarter note")
    primary_rhythm: RhythmRule = Field(
        default_factory=lambda: RhythmRule(
            enabled=True, family=RhythmFamily.SIMPLE, min_note_value="1/16"
        ),
        description="Primary rhythm grid",
    )
    secondary_rhythm: RhythmRule = Field(
        default_factory=lambda: RhythmRule(
            enabled=False, family=RhythmFamily.TRIPLE, min_note_value="1/8t"
        ),
        description="Secondary rhythm grid",
    )
    detect_ornaments: bool = Field(True, description="Enable ornament detection")
    ornaments: OrnamentDetectionParams | None = Field(
        None, description="Ornament detection thresholds"
    )
    quantizer: ShadowQuantizerParams = Field(
        default_factory=ShadowQuantizerParams, description="Shadow quantizer weights"
    )
    voices: VoiceSeparationParams = Field(
        default_factory=VoiceSeparationParams, description="Voice separation options"
    )
    voice_costs: VoiceCostParams = Field(
        default_factory=VoiceCostParams, description="Voice cost constants"
    )
