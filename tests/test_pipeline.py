import pytest

from midi_annotator import pipeline
from midi_annotator.models import (
    Note,
    OrnamentResult,
    PipelineResult,
    ProcessingParameters,
    QuantizationResult,
    RhythmFamily,
    RhythmRule,
    VoiceDistributionResult,
    VoiceSeparationParams,
)
from midi_annotator.pipeline import (
    InputError,
    ProcessingError,
    detect_ornaments,
    ornament_params_for,
    process_complete_pipeline,
    quantize_notes,
    separate_voices,
)


@pytest.fixture
def triplet_params():
    return ProcessingParameters(
        secondary_rhythm=RhythmRule(
            enabled=True, family=RhythmFamily.TRIPLE, min_note_value="1/8t"
        )
    )


def test_stages_empty():
    params = ProcessingParameters()
    assert detect_ornaments([], params) == OrnamentResult()
    assert quantize_notes([], params) == QuantizationResult()
    assert separate_voices([], params) == VoiceDistributionResult()


def test_process_complete_pipeline_empty():
    res = process_complete_pipeline([])
    assert isinstance(res, PipelineResult)
    assert res.notes == []


def test_duplicate_ids_raise():
    notes = [
        Note(pitch=60, onset=0, duration=120, id="x"),
        Note(pitch=62, onset=120, duration=120, id="x"),
    ]
    with pytest.raises(InputError):
        process_complete_pipeline(notes)


def test_ornament_params_follow_primary_grid():
    params = ProcessingParameters(
        primary_rhythm=RhythmRule(enabled=True, min_note_value="1/32")
    )
    # Half of a 60-tick grid
    assert ornament_params_for(params).grace_max_dur_ticks == 30


def test_detection_can_be_disabled(grace_notes):
    params = ProcessingParameters(detect_ornaments=False)
    res = detect_ornaments(grace_notes, params)
    assert res.annotations == {}
    assert len(res.notes) == 2


def test_grace_note_keeps_performed_timing(grace_notes):
    res = process_complete_pipeline(grace_notes)
    grace_id = res.ornaments.notes[0].id
    assert res.ornaments.annotations[grace_id].is_ornament
    assert grace_id not in res.quantization.decisions

    grace = next(n for n in res.notes if n.id == grace_id)
    assert (grace.onset, grace.duration) == (0, 40)
    assert len(res.quantization.decisions) == 1


def test_quantize_skips_ids(ppq, triplet_context_notes):
    params = ProcessingParameters()
    first = quantize_notes(triplet_context_notes, params)
    outlier = next(n for n in first.notes if n.pitch == 65)
    skipped = quantize_notes(triplet_context_notes, params, {outlier.id})
    kept = next(n for n in skipped.notes if n.id == outlier.id)
    assert (kept.onset, kept.duration) == (320, 110)
    assert outlier.id not in skipped.decisions
    assert len(skipped.notes) == 5


def test_triplet_outlier_through_pipeline(triplet_params, triplet_context_notes):
    res = process_complete_pipeline(triplet_context_notes, triplet_params)
    assert res.ornaments.selected == []
    outlier = next(n for n in res.notes if n.pitch == 65)
    assert (outlier.onset, outlier.duration) == (320, 160)
    assert res.quantization.decisions[outlier.id].selected_family is RhythmFamily.TRIPLE


def test_orphan_through_pipeline(orphan_notes):
    params = ProcessingParameters(
        voices=VoiceSeparationParams(max_voices=1, disable_chords=True)
    )
    res = process_complete_pipeline(orphan_notes, params)
    assert len(res.voices.orphans) == 1
    assert res.voices.orphans[0].pitch == 64
    assert len(res.voices.voices[0]) == 2


def test_conservation_across_stages(chorale_notes, triplet_params):
    res = process_complete_pipeline(chorale_notes, triplet_params)
    assert len(res.ornaments.notes) == len(chorale_notes)
    assert len(res.quantization.notes) == len(chorale_notes)
    assert res.voices.note_count == len(chorale_notes)
    assert len(res.notes) == len(chorale_notes)


def test_unexpected_failure_wrapped(monkeypatch, orphan_notes):
    def boom(*args, **kwargs):
        raise RuntimeError("voice table corrupted")

    monkeypatch.setattr(pipeline, "distribute_to_voices", boom)
    with pytest.raises(ProcessingError):
        process_complete_pipeline(orphan_notes)
