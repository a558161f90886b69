"""
Color assignment for calendar display

Gives every shift a stable palette color so its dots stay recognizable
across months. The month aggregator only ever calls get_color.
"""

from typing import Dict, List, Optional, Set
import logging


logger = logging.getLogger(__name__)

SESSION_COLORS = [
    "#2B7DD4",
    "#5AC8FA",
    "#00B2A9",
    "#3E8EDE",
    "#6F42C1",
    "#A052CC",
    "#009688",
    "#4FC3F7",
    "#81D4FA",
    "#3D5AFE",
    "#26C6DA",
    "#80CBC4",
    "#B39DDB",
    "#64B5F6",
    "#1E88E5",
    "#90CAF9",
    "#C5CAE9",
    "#8E99F3",
    "#00ACC1",
    "#B2EBF2",
]


class ColorManager:
    """Assigns palette colors to shift IDs in first-come order"""

    def __init__(self, palette: Optional[List[str]] = None):
        self.palette = list(SESSION_COLORS if palette is None else palette)
        if not self.palette:
            raise ValueError("Color palette must not be empty")
        self._used: Set[str] = set()
        self._assigned: Dict[str, str] = {}
        self._next_index = 0

    def get_color(self, shift_id: str) -> str:
        """Color for the shift, assigning the next free one on first use"""
        color = self._assigned.get(shift_id)
        if color is None:
            color = self._next_available_color()
            self._assigned[shift_id] = color
            self._used.add(color)
        return color

    def assign(self, shift_id: str, color: str):
        """Record a color already stored with a shift so new shifts avoid it"""
        previous = self._assigned.get(shift_id)
        self._assigned[shift_id] = color
        if previous is not None and previous != color and previous not in self._assigned.values():
            self._used.discard(previous)
        if color in self.palette:
            self._used.add(color)

    def _next_available_color(self) -> str:
        for offset in range(len(self.palette)):
            index = (self._next_index + offset) % len(self.palette)
            color = self.palette[index]
            if color not in self._used:
                self._next_index = (index + 1) % len(self.palette)
                return color

        # Palette exhausted, rotate through it again
        color = self.palette[self._next_index]
        self._next_index = (self._next_index + 1) % len(self.palette)
        logger.debug(f"Palette exhausted, reusing {color}")
        return color

    def release_color(self, shift_id: str):
        """Forget the shift's color and offer it to the next new shift"""
        color = self._assigned.pop(shift_id, None)
        if color is None:
            return
        if color in self.palette and color not in self._assigned.values():
            self._used.discard(color)
            self._next_index = self.palette.index(color)

    def reset(self):
        self._used.clear()
        self._assigned.clear()
        self._next_index = 0

    def used_colors(self) -> List[str]:
        return [color for color in self.palette if color in self._used]

    def available_colors(self) -> List[str]:
        return [color for color in self.palette if color not in self._used]

    def __call__(self, shift_id: str) -> str:
        return self.get_color(shift_id)
