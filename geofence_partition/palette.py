"""
Partition presentation colors.

Colors cycle through the supervision default palette. Two partitions may end
up with the same color once the palette wraps; nothing depends on uniqueness.
"""

import threading
from typing import Optional

import supervision as sv


class ColorAssigner:
    """Hands out hex colors in palette order."""

    def __init__(self, palette: Optional[sv.ColorPalette] = None):
        self._palette = palette or sv.ColorPalette.DEFAULT
        self._next_index = 0
        self._lock = threading.Lock()

    def next_color(self) -> str:
        with self._lock:
            color = self._palette.by_idx(self._next_index)
            self._next_index += 1
        return color.as_hex()

    def __len__(self) -> int:
        return len(self._palette.colors)
