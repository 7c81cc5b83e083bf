"""Data classes for Figma files, pages, layers and export options."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple

from .errors import InvalidFormatError


FIGMA_API_URL = "https://api.figma.com"


class ExportFormat(str, Enum):
    """Output formats the exporter can produce."""

    PDF = "pdf"
    PNG = "png"
    JPG = "jpg"
    SVG = "svg"

    @classmethod
    def parse(cls, value: object) -> "ExportFormat":
        """
        Turn a user supplied format into an ExportFormat.

        Matching is case-insensitive and `jpeg` is accepted for `jpg`.

        Raises:
            InvalidFormatError: If the value names no supported format
        """
        if isinstance(value, ExportFormat):
            return value
        if not isinstance(value, str):
            raise InvalidFormatError(value)
        name = value.strip().lower()
        if name == "jpeg":
            name = "jpg"
        try:
            return cls(name)
        except ValueError:
            raise InvalidFormatError(value) from None

    @property
    def extension(self) -> str:
        return f".{self.value}"


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in absolute canvas coordinates."""

    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Box {self.id} has a negative size: {self.width}x{self.height}"
            )


@dataclass(frozen=True)
class Layer(Box):
    """A renderable frame; `image_url` is set once the render is resolved."""

    name: str = ""
    image_url: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "Layer":
        """Build a layer from a FRAME node of the file document tree."""
        bounds = node.get("absoluteBoundingBox") or {}
        return cls(
            id=node["id"],
            name=node.get("name", ""),
            x=float(bounds.get("x", 0.0)),
            y=float(bounds.get("y", 0.0)),
            width=float(bounds.get("width", 0.0)),
            height=float(bounds.get("height", 0.0)),
        )


@dataclass(frozen=True)
class Page:
    """A canvas of the file with its frames in reading order."""

    id: str
    name: str
    layers: Tuple[Layer, ...] = ()


@dataclass(frozen=True)
class FileDetails:
    """A Figma file and its pages."""

    key: str
    name: str
    pages: Tuple[Page, ...] = ()


@dataclass(frozen=True)
class ExportOptions:
    """Options for one export call."""

    directory: Path = field(default_factory=Path.cwd)
    format: str = ExportFormat.PDF.value
    scale: Optional[float] = None
    first_page_only: bool = False
    api_url: str = FIGMA_API_URL
