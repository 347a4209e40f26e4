"""
Drawing surface handed to hover callbacks, and the hover event itself.

The rendering layer owns the real canvas; callbacks only ever see an
object implementing ``DrawingSurface``. ``RecordingSurface`` is a reference
implementation that records every draw command so renderers can replay
them (and tests can inspect them).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DrawingSurface(Protocol):
    width: int
    height: int

    def clear(self) -> None: ...

    def set_size(self, width: int, height: int) -> None: ...

    def set_fill_style(self, color: str) -> None: ...

    def set_stroke_style(self, color: str) -> None: ...

    def set_line_width(self, width: float) -> None: ...

    def set_font(self, font: str) -> None: ...

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None: ...

    def stroke_rect(self, x: float, y: float, width: float, height: float) -> None: ...

    def fill_text(self, text: str, x: float, y: float) -> None: ...


@dataclass
class RecordingSurface:
    """In-memory surface that records draw commands as tuples."""

    width: int = 300
    height: int = 200
    commands: list[tuple[Any, ...]] = field(default_factory=list)

    def clear(self) -> None:
        self.commands.clear()
        self.commands.append(("clear",))

    def set_size(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.commands.append(("set_size", self.width, self.height))

    def set_fill_style(self, color: str) -> None:
        self.commands.append(("set_fill_style", str(color)))

    def set_stroke_style(self, color: str) -> None:
        self.commands.append(("set_stroke_style", str(color)))

    def set_line_width(self, width: float) -> None:
        self.commands.append(("set_line_width", float(width)))

    def set_font(self, font: str) -> None:
        self.commands.append(("set_font", str(font)))

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None:
        self.commands.append(("fill_rect", float(x), float(y), float(width), float(height)))

    def stroke_rect(self, x: float, y: float, width: float, height: float) -> None:
        self.commands.append(("stroke_rect", float(x), float(y), float(width), float(height)))

    def fill_text(self, text: str, x: float, y: float) -> None:
        self.commands.append(("fill_text", str(text), float(x), float(y)))

    @property
    def is_blank(self) -> bool:
        return all(command[0] == "clear" for command in self.commands)


@dataclass(frozen=True)
class HoverEvent:
    """Pointer event over an element carrying a ``data-hover`` payload."""

    position: tuple[float, float]
    payload: Any
    visible: bool
    surface: DrawingSurface
