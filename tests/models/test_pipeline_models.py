from midi_annotator.models import (
    Note,
    ObjectiveBreakdown,
    OrnamentAnnotation,
    OrnamentResult,
    PipelineResult,
    RhythmFamily,
    ShadowConfidence,
    ShadowDecision,
    VoiceDistributionResult,
)


def test_ornament_result_defaults():
    res = OrnamentResult()
    assert res.notes == []
    assert res.hypotheses == []
    assert res.selected == []
    assert res.ornament_note_ids == set()


def test_ornament_note_ids_only_members():
    res = OrnamentResult(
        annotations={
            "a": OrnamentAnnotation(note_id="a", is_ornament=True),
            "b": OrnamentAnnotation(note_id="b", has_ornaments=True),
        }
    )
    assert res.ornament_note_ids == {"a"}


def test_shadow_decision_label():
    decision = ShadowDecision(
        note_id="n",
        original_onset=0,
        original_duration=120,
        confidence=ShadowConfidence.AMBIGUOUS,
        pass1_best_family=RhythmFamily.TRIPLE,
        selected_family=RhythmFamily.TRIPLE,
        selected_note_value="1/8t",
        selected_onset_ticks=0,
        selected_duration_ticks=160,
        objective_breakdown=ObjectiveBreakdown(),
    )
    assert decision.confidence_label == "Ambiguous"
    assert decision.accommodation_applied is None
    assert decision.alternatives == []


def test_voice_distribution_note_count():
    notes = [Note(pitch=60, onset=i * 10, duration=5) for i in range(3)]
    res = VoiceDistributionResult(voices=[notes[:2]], orphans=notes[2:])
    assert res.note_count == 3


def test_pipeline_result_defaults():
    res = PipelineResult()
    assert res.notes == []
    assert res.voices.voices == []
    assert res.quantization.decisions == {}
