"""Post-processing of YOLO detector output: box formats, NMS and rescaling.

Tensors are numpy arrays. A raw prediction has shape (batch, 4 + classes, anchors)
with boxes in centre/width/height form in its first four rows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

ROAD_USER_CLASSES = frozenset({0, 1, 2, 3, 5, 7})
CLASS_OFFSET = 7680


@dataclass(frozen=True)
class BoundingBox:
    """An axis-aligned box given by its left, top, right and bottom edges."""

    left: float
    top: float
    right: float
    bottom: float


@dataclass(frozen=True)
class Detection:
    """A detected object with its box, confidence and class id."""

    bbox: BoundingBox
    conf: float
    object_class: int


def xyxy2xywh(x) -> np.ndarray:
    """Convert boxes from corner form to centre/width/height form."""
    x = np.asarray(x)
    y = np.empty_like(x)
    y[..., 0] = (x[..., 0] + x[..., 2]) / 2
    y[..., 1] = (x[..., 1] + x[..., 3]) / 2
    y[..., 2] = x[..., 2] - x[..., 0]
    y[..., 3] = x[..., 3] - x[..., 1]
    return y


def xywh2xyxy(x) -> np.ndarray:
    """Convert boxes from centre/width/height form to corner form."""
    x = np.asarray(x)
    y = np.empty_like(x)
    dw = x[..., 2] / 2
    dh = x[..., 3] / 2
    y[..., 0] = x[..., 0] - dw
    y[..., 1] = x[..., 1] - dh
    y[..., 2] = x[..., 0] + dw
    y[..., 3] = x[..., 1] + dh
    return y


def nms(bboxes, scores, iou_threshold) -> np.ndarray:
    """Greedy non-maximum suppression.

    Returns the indices of the kept boxes, ordered by descending score.
    """
    bboxes = np.asarray(bboxes, dtype=np.float32)
    if bboxes.size == 0:
        return np.empty(0, dtype=np.int64)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)

    x1, y1, x2, y2 = (bboxes[:, k] for k in range(4))
    areas = (x2 - x1) * (y2 - y1)
    order = np.argsort(-scores, kind="stable")
    suppressed = np.zeros(len(bboxes), dtype=bool)
    threshold = np.float32(iou_threshold)

    keep: list[int] = []
    for position, i in enumerate(order):
        if suppressed[i]:
            continue
        keep.append(int(i))
        rest = order[position + 1 :]
        rest = rest[~suppressed[rest]]
        if rest.size == 0:
            continue
        w = np.maximum(np.float32(0), np.minimum(x2[i], x2[rest]) - np.maximum(x1[i], x1[rest]))
        h = np.maximum(np.float32(0), np.minimum(y2[i], y2[rest]) - np.maximum(y1[i], y1[rest]))
        inter = w * h
        with np.errstate(divide="ignore", invalid="ignore"):
            overlap = inter / (areas[i] + areas[rest] - inter)
        suppressed[rest[overlap > threshold]] = True
    return np.array(keep, dtype=np.int64)


def non_max_suppression(prediction, conf_thres=0.25, iou_thres=0.45, max_det=300) -> np.ndarray:
    """Filter raw detector output by confidence and suppress overlapping boxes.

    Returns an array of shape (batch, kept, 6 + masks) whose rows hold
    x1, y1, x2, y2, confidence and class id.
    """
    prediction = np.asarray(prediction, dtype=np.float32)
    if prediction.ndim != 3 or prediction.shape[1] < 4:
        raise ValueError("prediction must have shape (batch, 4 + classes, anchors)")
    batch = prediction.shape[0]
    nc = prediction.shape[1] - 4
    nm = prediction.shape[1] - nc - 4
    mi = 4 + nc
    candidates = prediction[:, 4:mi].max(axis=1) > conf_thres

    rows = np.swapaxes(prediction, -1, -2).copy()
    rows[..., :4] = xywh2xyxy(rows[..., :4])

    output = [np.zeros((0, 6 + nm), dtype=np.float32) for _ in range(batch)]
    for xi, (image_rows, mask) in enumerate(zip(rows, candidates)):
        x = image_rows[mask]
        box, cls, extra = x[:, :4], x[:, 4:mi], x[:, mi:]
        if cls.shape[1] == 0:
            continue
        conf = cls.max(axis=1, keepdims=True)
        j = cls.argmax(axis=1)[:, None].astype(np.float32)
        x = np.concatenate([box, conf, j, extra], axis=1)
        x = x[conf.reshape(-1) > conf_thres]
        if len(x) == 0:
            continue
        boxes = x[:, :4] + x[:, 5:6] * CLASS_OFFSET
        kept = nms(boxes, x[:, 4], iou_thres)[:max_det]
        output[xi] = x[kept]

    return np.stack(output)


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def scale_boxes(boxes, height, width, camera_height, camera_width) -> np.ndarray:
    """Map boxes from the letterboxed detector input back to camera pixels."""
    boxes = np.array(boxes, dtype=np.float32, copy=True)
    gain = min(height / camera_height, width / camera_width)
    pad0 = _round_half_away((width - camera_width * gain) / 2.0 - 0.1)
    pad1 = _round_half_away((height - camera_height * gain) / 2.0 - 0.1)

    boxes[..., 0] -= pad0
    boxes[..., 2] -= pad0
    boxes[..., 1] -= pad1
    boxes[..., 3] -= pad1
    boxes[..., :4] /= gain
    return boxes


def image_to_tensor(image) -> np.ndarray:
    """Turn an (H, W, 3) uint8 image into a (1, 3, H, W) float tensor in [0, 1]."""
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError("image must have shape (height, width, 3)")
    tensor = image.astype(np.float32) / 255.0
    return np.ascontiguousarray(tensor.transpose(2, 0, 1)[None])


def postprocess(output, height, width, camera_height, camera_width) -> list[Detection]:
    """Turn raw detector output into road-user detections in camera pixels."""
    keep = non_max_suppression(output)[0]
    keep[:, :4] = scale_boxes(keep[:, :4], height, width, camera_height, camera_width)

    detections = []
    for row in keep:
        cls = int(row[5])
        if cls not in ROAD_USER_CLASSES:
            continue
        bbox = BoundingBox(float(row[0]), float(row[1]), float(row[2]), float(row[3]))
        detections.append(Detection(bbox, float(row[4]), cls))
    return detections