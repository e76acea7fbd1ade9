import pytest
from pydantic import ValidationError

from midi_annotator.models import (
    OrnamentDetectionParams,
    ProcessingParameters,
    RhythmFamily,
    ShadowQuantizerParams,
    VoiceCostParams,
    VoiceSeparationParams,
)


def test_ornament_params_from_ppq():
    params = OrnamentDetectionParams.from_ppq(480)
    assert params.tq == 480
    assert params.ornament_max_span_ticks == 480
    assert params.family_mnv_ticks == 120
    # min(480/8, 120/2)
    assert params.grace_max_dur_ticks == 60
    assert params.attach_gap_ticks == 30
    assert params.neighbor_max_semitones == 2
    assert params.max_trill_notes is None


def test_ornament_params_follow_family_mnv():
    # A 1/32 grid halves the grace bound
    params = OrnamentDetectionParams.from_ppq(480, family_mnv_ticks=60)
    assert params.grace_max_dur_ticks == 30


def test_ornament_params_trill_cap_validation():
    with pytest.raises(ValidationError):
        OrnamentDetectionParams(max_trill_notes=3)


def test_quantizer_defaults():
    params = ShadowQuantizerParams()
    assert params.edit_cost_certain == 35
    assert params.edit_cost_weak_primary == 14
    assert params.edit_cost_ambiguous == 4
    assert params.context_radius == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"pitch_bias": 101},
        {"pitch_bias": -1},
        {"max_voices": 17},
        {"overlap_tolerance": -5},
        {"orphan_threshold": 0},
    ],
)
def test_voice_params_validation_raises(kwargs):
    with pytest.raises(ValidationError):
        VoiceSeparationParams(**kwargs)


def test_voice_cost_defaults():
    costs = VoiceCostParams()
    assert costs.m7_leap == 10
    assert costs.octave_leap == 12
    assert costs.wide_leap == 16
    assert costs.zone_top_pitch == 84


def test_processing_parameters_defaults():
    params = ProcessingParameters()
    assert params.ppq == 480
    assert params.primary_rhythm.enabled
    assert params.primary_rhythm.family is RhythmFamily.SIMPLE
    assert not params.secondary_rhythm.enabled
    assert params.secondary_rhythm.family is RhythmFamily.TRIPLE
    assert params.detect_ornaments
    assert params.ornaments is None
