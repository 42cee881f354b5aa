"""Error kinds raised by the slideshow pipeline.

The HTTP layer never exposes these to clients; they exist so the log says
which stage failed and why.
"""

from typing import Optional


class SlideshowError(Exception):
    """Base exception for all pipeline failures."""


class FetchError(SlideshowError):
    """A source image could not be downloaded."""

    def __init__(self, index: int, url: str, reason: str):
        self.index = index
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download image {index + 1} from {url}: {reason}")


class EncodeError(SlideshowError):
    """The encoder exited non-zero or ran past its deadline."""

    def __init__(self, returncode: Optional[int], tail: str = "", timed_out: bool = False):
        self.returncode = returncode
        self.tail = tail
        self.timed_out = timed_out
        if timed_out:
            message = "FFmpeg process timed out and was killed"
        else:
            message = f"FFmpeg process exited with code {returncode}"
        super().__init__(message)


class UploadError(SlideshowError):
    """The storage backend rejected the write."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to upload {key}: {reason}")


class PipelineBusyError(SlideshowError):
    """No pipeline slot became free before the admission deadline."""
