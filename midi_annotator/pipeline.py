"""
Pipeline processing functions for MIDI note annotation.

This module chains the three annotation stages (ornament detection, shadow
quantization and voice separation) over one note sequence. Each stage is
also exposed on its own so callers can run, inspect or replace individual
steps.
"""

import logging

from midi_annotator.models import (
    Note,
    OrnamentDetectionParams,
    OrnamentResult,
    PipelineResult,
    ProcessingParameters,
    QuantizationResult,
    VoiceDistributionResult,
)
from midi_annotator.note_utils import assign_note_ids, find_duplicate_ids, sort_notes
from midi_annotator.ornament_detection import tag_ornaments
from midi_annotator.rhythm import get_grid_quantum
from midi_annotator.shadow_quantization import apply_shadow_quantization
from midi_annotator.voice_separation import distribute_to_voices

logger = logging.getLogger(__name__)


# Custom exceptions
class PipelineError(Exception):
    """Base exception for pipeline processing errors."""

    pass


class InputError(PipelineError):
    """Exception raised when input data is invalid."""

    pass


class ProcessingError(PipelineError):
    """Exception raised when processing fails."""

    pass


def _validate_notes(notes: list[Note]) -> None:
    duplicates = find_duplicate_ids(notes)
    if duplicates:
        raise InputError(f"Duplicate note ids: {', '.join(duplicates)}")


def ornament_params_for(params: ProcessingParameters) -> OrnamentDetectionParams:
    """Ornament thresholds for a configuration.

    Uses the explicit ``params.ornaments`` when set, otherwise derives them
    from the resolution and the Primary grid's minimum note value.
    """
    if params.ornaments is not None:
        return params.ornaments
    mnv = get_grid_quantum(params.ppq, params.primary_rhythm)
    return OrnamentDetectionParams.from_ppq(params.ppq, mnv or None)


def detect_ornaments(notes, params):
    """Detect and select ornament figures.

    Args:
        notes: Notes to scan
        params: Processing parameters

    Returns:
        OrnamentResult with hypotheses, the selected subset and per-note
        annotations
    """
    if not notes:
        logger.warning("No notes provided for ornament detection")
        return OrnamentResult()

    _validate_notes(notes)

    if not params.detect_ornaments:
        return OrnamentResult(notes=assign_note_ids(notes))

    return tag_ornaments(notes, ornament_params_for(params))


def quantize_notes(notes, params, skip_ids=frozenset()):
    """Snap notes to the configured rhythm grids.

    Args:
        notes: Notes to quantize
        params: Processing parameters
        skip_ids: Ids of notes that keep their performed timing

    Returns:
        QuantizationResult with every note (skipped ones unchanged) in
        canonical order and a decision per quantized note
    """
    if not notes:
        logger.warning("No notes provided for quantization")
        return QuantizationResult()

    _validate_notes(notes)
    ordered = assign_note_ids(notes)

    kept = [n for n in ordered if n.id in skip_ids]
    result = apply_shadow_quantization(
        [n for n in ordered if n.id not in skip_ids],
        params.ppq,
        params.primary_rhythm,
        params.secondary_rhythm,
        params.quantizer,
    )

    return QuantizationResult(
        notes=sort_notes(result.notes + kept), decisions=result.decisions
    )


def separate_voices(notes, params):
    """Distribute notes into voices.

    Args:
        notes: Notes to distribute
        params: Processing parameters

    Returns:
        VoiceDistributionResult with voices, orphans and explanations
    """
    if not notes:
        logger.warning("No notes provided for voice separation")
        return VoiceDistributionResult()

    _validate_notes(notes)
    return distribute_to_voices(notes, params.voices, params.ppq, params.voice_costs)


def process_complete_pipeline(notes, params=None):
    """Process the complete annotation pipeline.

    Ornament members keep their performed timing; every other note is
    quantized before voices are assigned.

    Args:
        notes: Input notes
        params: Processing parameters

    Returns:
        PipelineResult with every stage result and the final notes

    Raises:
        InputError: If two notes share an id.
        ProcessingError: If a stage fails unexpectedly.
    """
    params = params or ProcessingParameters()
    if not notes:
        logger.warning("No notes provided for pipeline processing")
        return PipelineResult()

    try:
        # Step 1: Ornament detection
        ornament_result = detect_ornaments(notes, params)

        # Step 2: Shadow quantization
        quantization_result = quantize_notes(
            ornament_result.notes, params, ornament_result.ornament_note_ids
        )

        # Step 3: Voice separation
        voice_result = separate_voices(quantization_result.notes, params)

        return PipelineResult(
            ornaments=ornament_result,
            quantization=quantization_result,
            voices=voice_result,
            notes=quantization_result.notes,
        )

    except PipelineError:
        raise
    except Exception as e:
        logger.error(f"Error in pipeline processing: {str(e)}")
        raise ProcessingError(str(e)) from e
