"""
Failure types for a single URL's capture pipeline.

Every error carries the URL it happened on and a short machine-readable reason so
the processor can report it and move on to the next URL.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for anything that aborts one URL's capture."""

    def __init__(self, reason: str, url: Optional[str] = None, detail: str = ""):
        self.reason = reason
        self.url = url
        self.detail = detail
        message = reason if not detail else f"{reason}: {detail}"
        if url:
            message = f"{message} ({url})"
        super().__init__(message)

    def for_url(self, url: str) -> "CaptureError":
        """Attach the URL if the raising code did not know it."""
        if not self.url:
            self.url = url
            self.args = (f"{self.args[0]} ({url})",)
        return self


class LocatorFailure(CaptureError):
    """The region locator could not pick a region (no_table_found, heading_not_found, ...)."""


class SynthesisTimeout(CaptureError):
    def __init__(self, timeout_ms: int, url: Optional[str] = None):
        self.timeout_ms = timeout_ms
        super().__init__(
            "synthesis_timeout",
            url=url,
            detail=f"element not visible in synthesized document after {timeout_ms}ms",
        )


class RegionTooSmall(CaptureError):
    def __init__(self, width: float, height: float, url: Optional[str] = None):
        self.width = width
        self.height = height
        super().__init__("region_too_small", url=url, detail=f"{width:.1f}x{height:.1f}px")


class OutOfBounds(CaptureError):
    """The measured region does not fit the document; usually a stale measurement."""


class RendererFailure(CaptureError):
    """Navigation, timeout or browser errors raised by Playwright."""


class DeliveryFailure(CaptureError):
    """The delivery channel rejected the upload."""


def first_line(error: BaseException) -> str:
    """First line of an exception message; Playwright appends a multi-line call log."""
    lines = str(error).strip().splitlines()
    return lines[0] if lines else error.__class__.__name__
