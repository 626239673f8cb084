from __future__ import annotations


class SpikeBenderError(Exception):
    """Base class for every failure raised by the dynamics core."""


class AllocationFailure(SpikeBenderError, MemoryError):
    """A sample buffer could not be constructed."""


class ChannelCountMismatch(SpikeBenderError):
    """Two samples combined in one operation disagree on their channel count."""

    def __init__(self, expected: int, actual: int, what: str = "sample"):
        super().__init__(f"Channel count mismatch for {what}: expected {expected}, got {actual}")
        self.expected = int(expected)
        self.actual = int(actual)


class BadArguments(SpikeBenderError, ValueError):
    """Missing or invalid input handed to an operation."""


class AudioFileError(SpikeBenderError, OSError):
    """An audio file could not be read or written."""
