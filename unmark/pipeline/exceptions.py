"""Exceptions raised by the frame pipeline and its service clients."""

from __future__ import annotations


class PipelineError(Exception):
    """Base pipeline exception."""


class SourceError(PipelineError):
    """Raised when the source video cannot be probed or decoded."""


class DetectionError(PipelineError):
    """Raised when a detection call fails or returns an unusable payload."""


class InpaintError(PipelineError):
    """Raised when an inpainting call fails or returns an unusable image."""


class AssemblyError(PipelineError):
    """Raised when the output video cannot be encoded."""


class PipelineCancelled(PipelineError):
    """Raised at a suspension point once the run's token is cancelled or expired."""


class PipelineFailed(PipelineError):
    """Terminal failure reported to the caller of a pipeline run."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
