# mediapreview/core/__init__.py
"""
Core preview logic -- outcome types, classification, resize geometry,
cancellation and the pipeline orchestrator.

Canonical imports:
    from mediapreview.core import PreviewPipeline, build_pipeline
    from mediapreview.core.domain import Success, TimedOut, PreviewResult
    from mediapreview.core.ports import ImageTransform, FrameExtractor
"""
from mediapreview.core.domain import (  # noqa: F401
    MediaKind,
    ImageMetadata,
    PreviewResult,
    OutcomeKind,
    Success,
    Rejected,
    UpstreamError,
    Unsupported,
    TimedOut,
    PipelineOutcome,
)
from mediapreview.core.classifier import Classification, Decision, classify  # noqa: F401
from mediapreview.core.geometry import ResizePlan, plan_resize  # noqa: F401
from mediapreview.core.cancellation import CancellationToken  # noqa: F401
from mediapreview.core.previewers import ImagePreviewer, VideoPreviewer  # noqa: F401
from mediapreview.core.pipeline import (  # noqa: F401
    PipelineState,
    PreviewRun,
    PreviewPipeline,
    build_pipeline,
)
