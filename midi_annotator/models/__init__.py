"""Domain models for the midi-annotator library.

This module provides a centralized location for all data models used
throughout the annotation pipeline. It includes:

- Core domain models (Note, RhythmRule and the small enumerations)
- Stage results and annotation records (hypotheses, decisions, explanations)
- Configuration parameters for each stage

All models are built using Pydantic for data validation and serialization,
ensuring type safety and clear interfaces between pipeline components.
"""

# Re-export core models
from midi_annotator.models.core_models import (
    ConflictType,
    Note,
    OrnamentClass,
    RhythmFamily,
    RhythmRule,
    ShadowConfidence,
)

# Re-export pipeline models
from midi_annotator.models.pipeline_models import (
    Accommodation,
    CandidateScore,
    ObjectiveBreakdown,
    OrnamentAnnotation,
    OrnamentHypothesis,
    OrnamentResult,
    OrnamentTimingBounds,
    PipelineResult,
    QuantizationResult,
    QuantizationWarning,
    ShadowDecision,
    TransformationStats,
    VoiceCostEntry,
    VoiceDistributionResult,
    VoiceExplanation,
)

# Re-export setting models
from midi_annotator.models.settings_models import (
    OrnamentDetectionParams,
    ProcessingParameters,
    ShadowQuantizerParams,
    VoiceCostParams,
    VoiceSeparationParams,
)
