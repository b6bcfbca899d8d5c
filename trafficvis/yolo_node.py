"""A processing node that runs a YOLO model on camera images."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

import numpy as np

from trafficvis.yolo import Detection, image_to_tensor, postprocess


@dataclass(frozen=True)
class CameraSize:
    """The original image size of a camera."""

    camera_height: int
    camera_width: int


@dataclass
class Detections:
    """The detections found in one image of one camera."""

    source: str
    timestamp: int
    objects: list[Detection] = field(default_factory=list)


class YoloNode:
    """Runs a detector on downscaled images and reports boxes in camera pixels.

    `model` takes a (1, 3, height, width) float tensor and returns the raw
    prediction of shape (1, 4 + classes, anchors).
    """

    CLASSES = (
        "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
        "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat", "dog",
        "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack", "umbrella",
        "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball", "kite",
        "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket", "bottle",
        "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich",
        "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
        "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse", "remote",
        "keyboard", "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator", "book",
        "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
    )

    def __init__(
        self,
        model: Callable[[np.ndarray], np.ndarray],
        height: int,
        width: int,
        camera_sizes: Mapping[str, CameraSize],
    ) -> None:
        self.model = model
        self.height = height
        self.width = width
        self.camera_sizes = dict(camera_sizes)

    def process(self, image, source: str, timestamp: int) -> Detections:
        """Detect road users in `image`, which came from camera `source`."""
        try:
            size = self.camera_sizes[source]
        except KeyError:
            raise KeyError(f"unknown camera {source!r}") from None
        output = np.asarray(self.model(image_to_tensor(image)), dtype=np.float32)
        objects = postprocess(output, self.height, self.width, size.camera_height, size.camera_width)
        return Detections(source, timestamp, objects)