"""Scrolling spectrogram history.

Frames handed out by a capture source may be overwritten on the next pull,
so ``push`` always copies. ``render`` turns the retained columns into an RGB
image: newest column on the right, low frequencies at the bottom, with the
top third of the spectrum cut off since it carries little voice energy.
"""

import numpy as np
from numpy.typing import NDArray

BACKGROUND = (5, 5, 5)
# Magnitudes at or below this are drawn as background
VISIBLE_THRESHOLD = 10
# Only the lowest 1/1.5 of the bins are mapped onto the image height
FREQUENCY_CUTOFF = 1.5


def _build_colormap() -> NDArray[np.uint8]:
    """Dark blue -> purple -> cyan -> white lookup table for byte magnitudes."""
    lut = np.zeros((256, 3), dtype=np.int32)
    for value in range(256):
        if value <= VISIBLE_THRESHOLD:
            lut[value] = BACKGROUND
        elif value < 128:
            lut[value] = (value, 0, 100 + value)
        elif value < 200:
            lut[value] = (128 - (value - 128), (value - 128) * 3, 255)
        else:
            lut[value] = ((value - 200) * 5, 255, 255)
    return np.clip(lut, 0, 255).astype(np.uint8)


COLORMAP = _build_colormap()


class SpectrogramHistory:
    def __init__(self, columns: int = 400, bin_count: int = 1024):
        if columns <= 0 or bin_count <= 0:
            raise ValueError("columns and bin_count must be positive")
        self.columns = columns
        self.bin_count = bin_count
        self._frames = np.zeros((columns, bin_count), dtype=np.uint8)
        self._next = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def clear(self):
        self._frames.fill(0)
        self._next = 0
        self._count = 0

    def push(self, frame: NDArray):
        frame = np.asarray(frame)
        if frame.ndim != 1:
            raise ValueError("Spectral frames must be one-dimensional")
        if len(frame) != self.bin_count:
            # New session with a different window size
            self.bin_count = len(frame)
            self._frames = np.zeros((self.columns, self.bin_count), dtype=np.uint8)
            self._next = 0
            self._count = 0

        self._frames[self._next] = frame  # copies into owned storage
        self._next = (self._next + 1) % self.columns
        self._count = min(self._count + 1, self.columns)

    def frames(self) -> NDArray[np.uint8]:
        """Retained frames, oldest first, as a (count, bin_count) copy."""
        if self._count < self.columns:
            return self._frames[: self._count].copy()
        return np.roll(self._frames, -self._next, axis=0)

    def render(self, height: int = 400) -> NDArray[np.uint8]:
        """RGB image of shape (height, columns, 3). Unfilled columns are background."""
        if height <= 0:
            raise ValueError("height must be positive")

        rows = np.arange(height)
        freq_index = np.floor(((height - rows) / height) * (self.bin_count / FREQUENCY_CUTOFF)).astype(int)
        freq_index = np.clip(freq_index, 0, self.bin_count - 1)

        image = np.empty((height, self.columns, 3), dtype=np.uint8)
        image[:] = BACKGROUND

        frames = self.frames()
        if len(frames):
            # (count, height) magnitudes -> (height, count, 3) colors
            columns = COLORMAP[frames[:, freq_index]].transpose(1, 0, 2)
            image[:, self.columns - len(frames):] = columns
        return image
