# mediapreview/core/pipeline.py
"""
Fetch → classify → extract → preview, as one sequential pass per URL.

Expected negative results (origin rejected the request, origin error,
unsupported media, deadline exceeded) are returned as PipelineOutcome
values. Anything else is a fault: the run is marked FAULTED and the
exception propagates to the caller. Nothing is retried.
"""
from __future__ import annotations

import uuid
from enum import Enum
from pathlib import Path

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.classifier import Decision, classify
from mediapreview.core.domain import (
    FetchTimeoutError,
    MediaFetchError,
    MediaKind,
    PipelineOutcome,
    ProcessingTimeoutError,
    Rejected,
    Success,
    TimedOut,
    Unsupported,
    UpstreamError,
)
from mediapreview.core.previewers import ImagePreviewer, VideoPreviewer
from mediapreview.infra.fetcher import BoundedFetcher
from mediapreview.infra.logging_config import LogContext, get_logger, mask_url
from mediapreview.infra.metrics import PreviewMetrics

logger = get_logger(__name__)

# Fixed name inside the per-run scratch directory
DOWNLOAD_FILENAME = "download"


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    EXTRACTING = "extracting"
    PREVIEW_GENERATED = "preview_generated"
    RESPONDED = "responded"
    # Terminal failure states
    REJECTED = "rejected"
    UPSTREAM_ERRORED = "upstream_errored"
    UNSUPPORTED = "unsupported"
    TIMED_OUT = "timed_out"
    FAULTED = "faulted"


TERMINAL_STATES = frozenset({
    PipelineState.RESPONDED,
    PipelineState.REJECTED,
    PipelineState.UPSTREAM_ERRORED,
    PipelineState.UNSUPPORTED,
    PipelineState.TIMED_OUT,
    PipelineState.FAULTED,
})


class PreviewRun:
    """State of a single pipeline run (one URL, one scratch directory)."""

    def __init__(self, run_id: str | None = None, request_id: str | None = None):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.media_kind: MediaKind | None = None
        self.log = LogContext(logger, request_id=request_id, run_id=self.run_id)

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, state: PipelineState) -> None:
        if self.is_finished:
            raise RuntimeError(f"run already finished in state {self.state.value}")
        self.log.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        self.log.set(state=state.value)


class PreviewPipeline:
    def __init__(
        self,
        fetcher: BoundedFetcher,
        image_previewer: ImagePreviewer,
        video_previewer: VideoPreviewer,
    ):
        self.fetcher = fetcher
        self.image_previewer = image_previewer
        self.video_previewer = video_previewer

    async def run(
        self,
        url: str,
        scratch_dir: Path,
        run: PreviewRun | None = None,
        token: CancellationToken | None = None,
    ) -> PipelineOutcome:
        """
        Produce a preview for ``url`` using ``scratch_dir`` for temporary files.

        Args:
            url: Origin URL (http/https)
            scratch_dir: Existing, empty directory owned by this run
            run: Optional run object (state is observable after return)
            token: Optional cancellation token; a new one is created if None

        Returns:
            Exactly one PipelineOutcome variant.

        Raises:
            Exception: any fault (unreadable image, extractor failure, bug)
        """
        run = run or PreviewRun()
        token = token or CancellationToken()

        with PreviewMetrics.track_run():
            try:
                outcome = await self._execute(url, Path(scratch_dir), run, token)
            except Exception as e:
                # A fault raised while unwinding a finished run (e.g. fetch cleanup) keeps its state
                if not run.is_finished:
                    run.transition(PipelineState.FAULTED)
                PreviewMetrics.fault(type(e).__name__)
                run.log.error(f"Preview faulted: {type(e).__name__}: {e}")
                raise

        PreviewMetrics.outcome(outcome.kind.value, run.media_kind.value if run.media_kind else None)
        run.log.info(f"Preview finished: outcome={outcome.kind.value}, state={run.state.value}")
        return outcome

    async def _execute(
        self,
        url: str,
        scratch_dir: Path,
        run: PreviewRun,
        token: CancellationToken,
    ) -> PipelineOutcome:
        download_path = scratch_dir / DOWNLOAD_FILENAME

        run.transition(PipelineState.FETCHING)
        run.log.info(f"request {mask_url(url)}")

        try:
            async with self.fetcher.fetch(url, token) as resource:
                run.transition(PipelineState.CLASSIFYING)
                classification = classify(resource.status, resource.content_type)

                if classification.decision is Decision.REJECTED:
                    run.transition(PipelineState.REJECTED)
                    return Rejected(status=classification.status)

                if classification.decision is Decision.UPSTREAM_ERROR:
                    run.transition(PipelineState.UPSTREAM_ERRORED)
                    return UpstreamError(
                        reason=f"origin returned {resource.status} {resource.reason or ''}".strip(),
                        status=classification.status,
                    )

                if classification.decision is Decision.UNSUPPORTED:
                    run.log.info(f"Unsupported Content-Type: {resource.content_type}")
                    run.transition(PipelineState.UNSUPPORTED)
                    return Unsupported(content_type=resource.content_type)

                content_type = resource.content_type
                run.media_kind = classification.kind
                await resource.stream_to(download_path)

        except FetchTimeoutError as e:
            if run.is_finished:
                raise
            run.log.warning(f"Fetch timed out: phase={e.phase}")
            run.transition(PipelineState.TIMED_OUT)
            return TimedOut(phase=e.phase)
        except MediaFetchError as e:
            if run.is_finished:
                raise
            run.log.warning(f"Fetch failed: {e}")
            run.transition(PipelineState.UPSTREAM_ERRORED)
            return UpstreamError(reason=str(e))

        try:
            if run.media_kind is MediaKind.VIDEO:
                run.transition(PipelineState.EXTRACTING)
                result = await self.video_previewer.preview(download_path, token)
            else:
                result = await self.image_previewer.preview(download_path, content_type)
        except ProcessingTimeoutError as e:
            run.log.warning(f"Processing timed out: {e}")
            run.transition(PipelineState.TIMED_OUT)
            return TimedOut(phase=e.operation)
        except FetchTimeoutError as e:
            # Token cancelled while an external process was running
            run.transition(PipelineState.TIMED_OUT)
            return TimedOut(phase=e.phase)

        run.transition(PipelineState.PREVIEW_GENERATED)
        run.log.info(
            f"Preview generated: content_type={result.content_type}, size={result.size_bytes}"
        )

        run.transition(PipelineState.RESPONDED)
        return Success(result=result)


def build_pipeline(settings, session=None) -> PreviewPipeline:
    """
    Wire a PreviewPipeline from Settings.

    ``session`` is an optional long-lived aiohttp session; without one
    every run opens and closes its own.
    """
    from mediapreview.infra.image_processor import PillowImageTransform, configure_decoder_limits
    from mediapreview.infra.image_worker import SubprocessImageTransform
    from mediapreview.infra.video_processor import FfmpegFrameExtractor

    configure_decoder_limits(settings.max_image_pixels)

    if settings.image_transform_mode == "subprocess":
        transform = SubprocessImageTransform(
            timeout=settings.image_subprocess_timeout,
            quality=settings.webp_quality,
            max_pixels=settings.max_image_pixels,
        )
    else:
        transform = PillowImageTransform(
            encode_timeout=settings.image_encode_timeout,
            quality=settings.webp_quality,
        )

    image_previewer = ImagePreviewer(
        transform,
        max_width=settings.preview_max_width,
        max_height=settings.preview_max_height,
    )
    video_previewer = VideoPreviewer(
        FfmpegFrameExtractor(settings.ffmpeg_path, settings.video_extract_timeout),
        image_previewer,
    )
    logger.info(
        f"Pipeline ready: transform={settings.image_transform_mode}, "
        f"box={settings.preview_max_width}x{settings.preview_max_height}"
    )
    return PreviewPipeline(
        BoundedFetcher.from_settings(settings, session),
        image_previewer,
        video_previewer,
    )
