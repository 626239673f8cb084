from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import AllocationFailure, BadArguments


@dataclass
class Sample:
    """Multichannel audio buffer.

    ``data`` is channel-major with shape ``(channels, length)`` and dtype
    float32; every channel shares the same length and sample rate.
    """

    data: np.ndarray
    sample_rate: int

    def __post_init__(self):
        data = np.asarray(self.data, dtype=np.float32)
        if data.ndim == 1:
            data = data[None, :]
        if data.ndim != 2:
            raise BadArguments(f"Sample data must be 1-D or 2-D, got shape {data.shape}")
        self.data = np.ascontiguousarray(data)
        self.sample_rate = int(self.sample_rate)

    @classmethod
    def allocate(cls, channels: int, length: int, sample_rate: int) -> "Sample":
        if channels < 0 or length < 0:
            raise BadArguments(f"Cannot allocate {channels} channels x {length} samples")
        try:
            data = np.zeros((int(channels), int(length)), dtype=np.float32)
        except (MemoryError, ValueError) as exc:
            raise AllocationFailure(f"Failed to allocate {channels} x {length} samples") from exc
        return cls(data, sample_rate)

    @classmethod
    def from_frames(cls, frames: np.ndarray, sample_rate: int) -> "Sample":
        """Build from the frame-major ``(length, channels)`` layout used by audio file libraries."""
        frames = np.asarray(frames, dtype=np.float32)
        if frames.ndim == 1:
            frames = frames[:, None]
        return cls(frames.T, sample_rate)

    def to_frames(self) -> np.ndarray:
        return np.ascontiguousarray(self.data.T)

    @property
    def channels(self) -> int:
        return int(self.data.shape[0])

    @property
    def length(self) -> int:
        return int(self.data.shape[1])

    @property
    def duration(self) -> float:
        return self.length / float(self.sample_rate) if self.sample_rate > 0 else 0.0

    def channel(self, index: int) -> np.ndarray:
        """Mutable view over one channel."""
        return self.data[index]

    def copy(self) -> "Sample":
        return Sample(self.data.copy(), self.sample_rate)

    def truncate_front(self, count: int) -> None:
        """Drop ``count`` samples from the head of every channel."""
        count = min(max(int(count), 0), self.length)
        self.data = np.ascontiguousarray(self.data[:, count:])

    def truncate_length(self, length: int) -> None:
        """Shorten every channel to at most ``length`` samples."""
        length = min(max(int(length), 0), self.length)
        self.data = np.ascontiguousarray(self.data[:, :length])

    def swap(self, other: "Sample") -> None:
        self.data, other.data = other.data, self.data
        self.sample_rate, other.sample_rate = other.sample_rate, self.sample_rate

    def peak(self) -> float:
        if self.data.size == 0:
            return 0.0
        return float(np.max(np.abs(self.data)))
