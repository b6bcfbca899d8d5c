# trafficvis

Tools for roadside traffic perception:

- **Bird's eye view maps** – draw lane borders and the ground footprint of each
  calibrated camera's field of view onto a top-down image, then plot road
  users on it.
- **YOLO post-processing** – turn raw detector output into bounding boxes in
  the coordinates of the original camera image, with non-maximum suppression
  and letterbox rescaling.

Images are `numpy` arrays of shape `(height, width, 3)`, dtype `uint8`, with
channels in BGR order.

## Installation

```
pip install .
```

Tests need the `test` extra:

```
pip install ".[test]"
pytest
```

## Bird's eye view

`trafficvis.drawing.draw_map(lane_borders, display_height, display_width, scaling, utm_to_base, cameras)`
takes lane border polylines (each a sequence of `(x, y, z)` points in UTM
coordinates), the display size, a zoom factor, the 4×4 UTM-to-base transform
and a mapping of camera names to `CameraProjection` entries (a 3×4 projection
matrix plus the camera image height and width). It draws the lane borders in
black on a white image, marks the base point in red and blends in each
camera's field of view in a colour derived from the camera name
(`camera_color`). It returns the image and the UTM-to-image transform.

```python
import numpy as np
from trafficvis.drawing import CameraProjection, draw_map
from trafficvis.birdeye import BirdEyeView, MapObject

# A camera 10 m above the base, looking straight down.
intrinsics = np.array([[1000.0, 0.0, 960.0], [0.0, 1000.0, 600.0], [0.0, 0.0, 1.0]])
rotation = np.diag([1.0, -1.0, -1.0])
translation = np.array([[0.0], [0.0], [10.0]])
projection_matrix = intrinsics @ np.hstack([rotation, translation])

lanes = [[(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (20.0, 5.0, 0.0)]]
cameras = {"north": CameraProjection(projection_matrix, height=1200, width=1920)}

map_image, utm_to_image = draw_map(lanes, 1200, 1920, 5.0, np.eye(4), cameras)

view = BirdEyeView(map_image, utm_to_image)
frame = view.render([MapObject(position=(3.0, 1.0, 0.0), object_class=2)], timestamp=0)
# frame.image, frame.timestamp, frame.source == "bird"
```

Lower-level helpers in `trafficvis.drawing`:

- `map_image_to_world_coordinate` intersects the viewing ray through an image
  point with the plane `z = height`,
- `singularity_padding` picks the image row used for the top edge of a field
  of view so that it stays away from the horizon,
- `base_to_image_center_transform` builds the base-to-pixel transform,
- `draw_camera_fov` blends one camera's field of view into an image in place.

`BirdEyeView.render` draws a disk for each `MapObject`; a position with only
`x` and `y` lies on the ground plane. Each object class has a fixed colour
(see `birdeye.class_color`). Only the classes person, bicycle, car,
motorcycle, bus and truck (0, 1, 2, 3, 5, 7) can be drawn; any other class
raises `UnknownObjectClassError`.

## Detection post-processing

`trafficvis.yolo` works on `numpy` arrays:

- `xywh2xyxy` / `xyxy2xywh` convert between box formats,
- `nms` performs greedy non-maximum suppression and returns the kept indices,
- `non_max_suppression` filters a raw `(batch, 4 + classes, anchors)` output
  (defaults: confidence 0.25, IoU 0.45, at most 300 detections),
- `scale_boxes` maps boxes from the detector input size back to the camera size,
- `image_to_tensor` turns an `HxWx3` `uint8` image into a `1x3xHxW` float array
  in `[0, 1]`,
- `postprocess` chains these and returns `Detection` objects (a
  `BoundingBox`, a confidence and a class id) for the road-user classes only.

`trafficvis.yolo_node.YoloNode` wraps any callable model that takes the
`1x3xHxW` tensor and returns the raw prediction:

```python
from trafficvis.yolo_node import CameraSize, YoloNode

node = YoloNode(model, 480, 640, {"north": CameraSize(1200, 1920)})
detections = node.process(downscaled_image, source="north", timestamp=123)
```

`process` raises `KeyError` for a camera that is not in `camera_sizes`.

## What this package does not do

- It does not load or run a neural network; `YoloNode` needs a model callable.
- It does not read map files; lane borders are passed in as point lists.
- It does not display images in a window or write video files.
- It has no command-line interface.