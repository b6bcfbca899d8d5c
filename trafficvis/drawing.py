"""Bird's-eye map drawing: lane borders, the base marker and camera fields of view.

Images are numpy arrays of shape (height, width, 3) and dtype uint8 whose
channels are in BGR order.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from itertools import pairwise
from typing import Iterable, Mapping, Sequence

import numpy as np
from PIL import Image, ImageDraw

_log = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF
_MT_STATE_SIZE = 624
_COORD_LIMIT = 1 << 20

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
BASE_MARKER_COLOR = (0, 0, 255)
FOV_ALPHA = 0.2


@dataclass(frozen=True, eq=False)
class CameraProjection:
    """A camera's 3x4 projection matrix together with its image size."""

    projection_matrix: np.ndarray
    height: int
    width: int

    def __post_init__(self) -> None:
        matrix = np.asarray(self.projection_matrix, dtype=float)
        if matrix.shape != (3, 4):
            raise ValueError(f"projection matrix must be 3x4, got shape {matrix.shape}")
        object.__setattr__(self, "projection_matrix", matrix)

    @property
    def kr_inv(self) -> np.ndarray:
        """Inverse of the left 3x3 block (intrinsics times rotation)."""
        return np.linalg.inv(self.projection_matrix[:, :3])

    @property
    def translation_camera(self) -> np.ndarray:
        """Position of the camera centre in base coordinates."""
        return -self.kr_inv @ self.projection_matrix[:, 3]


def map_image_to_world_coordinate(coordinates, kr_inv, translation_camera, height=0.0) -> np.ndarray:
    """Intersect the viewing ray through an image point with the plane z = height.

    Returns the homogeneous world point as a vector of length 4.
    """
    x, y = coordinates
    kr_inv = np.asarray(kr_inv, dtype=float)
    translation = np.asarray(translation_camera, dtype=float).reshape(3)
    ray = kr_inv @ np.array([x, y, 1.0])
    point = ray * (height - translation[2]) / ray[2] + translation
    return np.append(point, 1.0)


def singularity_padding(image_x, image_height, base_to_image_center, kr_inv, translation_camera) -> int:
    """Row offset that keeps the top of a field of view away from the horizon.

    Finds the image row at which the projected vertical map coordinate changes
    fastest with the row and returns twice that row.
    """
    if image_height <= 0:
        return 0
    kr_inv = np.asarray(kr_inv, dtype=float)
    translation = np.asarray(translation_camera, dtype=float).reshape(3)
    transform = np.asarray(base_to_image_center, dtype=float)

    rows = np.arange(image_height, dtype=float)
    slope = kr_inv[:, 1]
    offset = kr_inv[:, 0] * image_x + kr_inv[:, 2]
    rays = offset[:, None] + slope[:, None] * rows
    depth = -translation[2]

    with np.errstate(divide="ignore", invalid="ignore"):
        point_derivative = depth * (slope[:, None] * rays[2] - rays * slope[2]) / rays[2] ** 2
        derivative = transform[1, :3] @ point_derivative

    magnitude = np.where(np.isnan(derivative), -np.inf, np.abs(derivative))
    return 2 * int(np.argmax(magnitude))


def base_to_image_center_transform(display_height, display_width, scaling) -> np.ndarray:
    """Affine map from the map base to pixel coordinates centred in the display."""
    scale = np.array(
        [
            [scaling, 0.0, 0.0, display_width / 2.0],
            [0.0, scaling, 0.0, display_height / 2.0],
            [0.0, 0.0, scaling, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )
    reflect = np.diag([-1.0, 1.0, 1.0, 1.0])
    return scale @ reflect


def _seed_sequence(entropy: Sequence[int], size: int) -> list[int]:
    """Standard seed-sequence mixing of 32-bit entropy words into `size` words."""
    words = [0x8B8B8B8B] * size
    count = len(entropy)
    tail = 11 if size >= 623 else 7 if size >= 68 else 5 if size >= 39 else 3 if size >= 7 else (size - 1) // 2
    p = (size - tail) // 2
    q = p + tail
    rounds = max(count + 1, size)

    def mix(value: int) -> int:
        return value ^ (value >> 27)

    for k in range(rounds):
        r1 = (1664525 * mix(words[k % size] ^ words[(k + p) % size] ^ words[(k - 1) % size])) & _MASK32
        if k == 0:
            r2 = r1 + count
        elif k <= count:
            r2 = r1 + k % size + entropy[k - 1]
        else:
            r2 = r1 + k % size
        r2 &= _MASK32
        words[(k + p) % size] = (words[(k + p) % size] + r1) & _MASK32
        words[(k + q) % size] = (words[(k + q) % size] + r2) & _MASK32
        words[k % size] = r2

    for k in range(rounds, rounds + size):
        r3 = (1566083941 * mix((words[k % size] + words[(k + p) % size] + words[(k - 1) % size]) & _MASK32)) & _MASK32
        r4 = (r3 - k % size) & _MASK32
        words[(k + p) % size] ^= r3
        words[(k + q) % size] ^= r4
        words[k % size] = r4

    return words


def camera_color(camera_name: str) -> tuple[int, int, int]:
    """Deterministic BGR colour for a camera, seeded from its name."""
    entropy = [byte if byte < 128 else (byte - 256) & _MASK32 for byte in camera_name.encode("utf-8")]
    state = _seed_sequence(entropy, _MT_STATE_SIZE)
    if not state[0] & 0x80000000 and not any(state[1:]):
        state[0] = 0x80000000

    generator = random.Random()
    generator.setstate((3, (*state, _MT_STATE_SIZE), None))
    draws = [generator.getrandbits(32) >> 24 for _ in range(3)]
    # The first draw lands in the last channel.
    blue, green, red = reversed(draws)
    return blue, green, red


def _pixel(point) -> tuple[int, int]:
    x, y = float(point[0]), float(point[1])
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError(f"point ({x}, {y}) cannot be drawn")
    return (
        int(max(-_COORD_LIMIT, min(_COORD_LIMIT, x))),
        int(max(-_COORD_LIMIT, min(_COORD_LIMIT, y))),
    )


def _check_view(view) -> None:
    if not isinstance(view, np.ndarray) or view.dtype != np.uint8 or view.ndim != 3 or view.shape[2] != 3:
        raise ValueError("view must be a uint8 array of shape (height, width, 3)")


def draw_camera_fov(view, camera_name, image_height, image_width, base_to_image_center, kr_inv, translation_camera):
    """Blend the ground footprint of a camera's field of view into `view` in place.

    Returns the same array.
    """
    _check_view(view)
    transform = np.asarray(base_to_image_center, dtype=float)

    def project(x: float, y: float) -> tuple[int, int]:
        return _pixel(transform @ map_image_to_world_coordinate((x, y), kr_inv, translation_camera))

    left_padding = singularity_padding(0.0, image_height, transform, kr_inv, translation_camera)
    right_padding = singularity_padding(float(image_width), image_height, transform, kr_inv, translation_camera)
    _log.info("%s: left_padding: %d, right_padding: %d", camera_name, left_padding, right_padding)

    corners = [
        project(0.0, float(image_height)),
        project(0.0, float(left_padding)),
        project(float(image_width), float(right_padding)),
        project(float(image_width), float(image_height)),
    ]

    overlay = Image.fromarray(np.ascontiguousarray(view).copy())
    draw = ImageDraw.Draw(overlay)
    draw.polygon(corners, fill=camera_color(camera_name))
    for start, end in pairwise([*corners, corners[0]]):
        draw.line([start, end], fill=BLACK, width=1)

    blended = FOV_ALPHA * view.astype(float) + (1.0 - FOV_ALPHA) * np.asarray(overlay, dtype=float)
    view[...] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return view


def _draw_disk(draw: ImageDraw.ImageDraw, center: tuple[int, int], radius: int, thickness: int, color) -> None:
    outer = radius + thickness // 2
    x, y = center
    draw.ellipse([x - outer, y - outer, x + outer, y + outer], fill=color)


def draw_map(
    lane_borders: Iterable[Iterable[Sequence[float]]],
    display_height: int,
    display_width: int,
    scaling: float,
    utm_to_base,
    cameras: Mapping[str, CameraProjection],
):
    """Draw a bird's-eye map from lane border polylines given in UTM coordinates.

    Returns the image and the affine transformation from UTM to image pixels.
    """
    base_to_image = base_to_image_center_transform(display_height, display_width, scaling)
    utm_to_image = base_to_image @ np.asarray(utm_to_base, dtype=float)

    canvas = Image.new("RGB", (display_width, display_height), WHITE)
    draw = ImageDraw.Draw(canvas)
    for border in lane_borders:
        points = [_pixel(utm_to_image @ np.array([p[0], p[1], p[2], 1.0])) for p in border]
        for start, end in pairwise(points):
            draw.line([start, end], fill=BLACK, width=1)

    base = _pixel(base_to_image @ np.array([0.0, 0.0, 0.0, 1.0]))
    _draw_disk(draw, base, radius=1, thickness=5, color=BASE_MARKER_COLOR)

    view = np.array(canvas)
    for name, camera in sorted(cameras.items(), key=lambda item: item[0]):
        draw_camera_fov(view, name, camera.height, camera.width, base_to_image, camera.kr_inv, camera.translation_camera)

    return view, utm_to_image