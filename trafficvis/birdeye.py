"""Rendering road users onto a bird's-eye map image."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from PIL import Image, ImageDraw

_CLASS_COLORS: dict[int, tuple[int, int, int]] = {
    0: (0, 0, 255),
    1: (0, 0, 150),
    2: (255, 0, 0),
    3: (150, 0, 0),
    5: (0, 150, 0),
    7: (0, 255, 0),
}

_COORD_LIMIT = 1 << 20


class UnknownObjectClassError(ValueError):
    """Raised for an object class that has no colour on the map."""

    def __init__(self, object_class: int) -> None:
        super().__init__(f"no colour for object class {object_class}")
        self.object_class = object_class


def class_color(object_class: int) -> tuple[int, int, int]:
    """BGR colour used for an object class."""
    try:
        return _CLASS_COLORS[object_class]
    except KeyError:
        raise UnknownObjectClassError(object_class) from None


@dataclass(frozen=True)
class MapObject:
    """A road user at a UTM position; a 2-D position lies on the ground plane."""

    position: Sequence[float]
    object_class: int

    def __post_init__(self) -> None:
        if len(self.position) < 2:
            raise ValueError("position needs at least x and y")

    @property
    def homogeneous(self) -> np.ndarray:
        x, y = self.position[0], self.position[1]
        z = self.position[2] if len(self.position) > 2 else 0.0
        return np.array([x, y, z, 1.0], dtype=float)


@dataclass
class RenderedImage:
    """An image together with the timestamp and source it belongs to."""

    image: np.ndarray
    timestamp: int
    source: str = "bird"


class BirdEyeView:
    """Draws road users onto a copy of a bird's-eye map image."""

    marker_radius = 1
    marker_thickness = 10

    def __init__(self, map_image, utm_to_image) -> None:
        image = np.array(map_image, dtype=np.uint8)
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError("map image must have shape (height, width, 3)")
        transform = np.asarray(utm_to_image, dtype=float)
        if transform.shape != (4, 4):
            raise ValueError("utm_to_image must be a 4x4 matrix")
        self.map_image = image
        self.utm_to_image = transform

    def render(self, objects: Iterable[MapObject], timestamp: int) -> RenderedImage:
        """Return the map with a coloured disk at every object's position."""
        canvas = Image.fromarray(self.map_image.copy())
        draw = ImageDraw.Draw(canvas)
        outer = self.marker_radius + self.marker_thickness // 2
        for item in objects:
            color = class_color(item.object_class)
            position = self.utm_to_image @ item.homogeneous
            x, y = float(position[0]), float(position[1])
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ValueError(f"object position ({x}, {y}) cannot be drawn")
            px = int(max(-_COORD_LIMIT, min(_COORD_LIMIT, x)))
            py = int(max(-_COORD_LIMIT, min(_COORD_LIMIT, y)))
            draw.ellipse([px - outer, py - outer, px + outer, py + outer], fill=color)
        return RenderedImage(np.array(canvas), timestamp, "bird")