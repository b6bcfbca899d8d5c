import numpy as np
import pytest

from trafficvis.drawing import (
    CameraProjection,
    base_to_image_center_transform,
    camera_color,
    draw_camera_fov,
    draw_map,
    map_image_to_world_coordinate,
    singularity_padding,
)

IDENTITY3 = np.eye(3)
CAMERA_ABOVE = np.array([0.0, 0.0, -10.0])


def test_world_point_lies_on_requested_plane():
    result = map_image_to_world_coordinate((3.0, 4.0), IDENTITY3, CAMERA_ABOVE, 2.5)
    assert result[2] == pytest.approx(2.5)
    assert result[3] == 1.0


def test_world_point_scales_with_depth():
    result = map_image_to_world_coordinate((3.0, 4.0), IDENTITY3, CAMERA_ABOVE)
    assert np.allclose(result, [10 * 3.0, 10 * 4.0, 0.0, 1.0])


def test_world_point_projects_back_to_image_point():
    rotation = np.array([[0.0, -1.0, 0.0], [0.0, 0.0, -1.0], [1.0, 0.0, 0.0]])
    intrinsics = np.array([[1000.0, 0.0, 960.0], [0.0, 1000.0, 600.0], [0.0, 0.0, 1.0]])
    centre = np.array([2.0, -3.0, 7.0])
    kr = intrinsics @ rotation
    projection = np.hstack([kr, (-kr @ centre)[:, None]])
    camera = CameraProjection(projection, 1200, 1920)

    world = map_image_to_world_coordinate((700.0, 900.0), camera.kr_inv, camera.translation_camera)
    image = projection @ world
    assert np.allclose(image[:2] / image[2], [700.0, 900.0])
    assert np.allclose(camera.translation_camera, centre)


def test_camera_projection_rejects_wrong_shape():
    with pytest.raises(ValueError):
        CameraProjection(np.eye(3), 10, 10)


def test_camera_projection_of_plain_translation():
    projection = np.hstack([np.eye(3), np.array([[1.0], [2.0], [3.0]])])
    camera = CameraProjection(projection, 5, 6)
    assert np.allclose(camera.kr_inv, np.eye(3))
    assert np.allclose(camera.translation_camera, [-1.0, -2.0, -3.0])


def test_base_to_image_center_maps_origin_to_display_center():
    transform = base_to_image_center_transform(100, 200, 2.0)
    origin = transform @ np.array([0.0, 0.0, 0.0, 1.0])
    assert np.allclose(origin, [200 / 2, 100 / 2, 0.0, 1.0])


def test_base_to_image_center_reflects_x():
    transform = base_to_image_center_transform(100, 200, 2.0)
    point = transform @ np.array([1.0, 1.0, 0.0, 1.0])
    assert point[0] == pytest.approx(200 / 2 - 2.0)
    assert point[1] == pytest.approx(100 / 2 + 2.0)


def test_padding_is_zero_without_rows():
    assert singularity_padding(0.0, 0, np.eye(4), IDENTITY3, CAMERA_ABOVE) == 0


def test_padding_is_zero_for_constant_derivative():
    assert singularity_padding(0.0, 40, np.eye(4), IDENTITY3, CAMERA_ABOVE) == 0


def test_padding_finds_row_nearest_the_horizon():
    kr_inv = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 1.0, -50.25]])
    transform = base_to_image_center_transform(100, 100, 1.0)
    padding = singularity_padding(30.0, 80, transform, kr_inv, np.array([0.0, 0.0, 10.0]))
    assert padding == 2 * 50


def test_camera_color_is_deterministic_and_in_range():
    first = camera_color("s110_n_cam_8")
    second = camera_color("s110_n_cam_8")
    assert first == second
    assert len(first) == 3
    assert all(0 <= channel <= 255 for channel in first)


def test_camera_color_depends_on_name():
    assert camera_color("s110_n_cam_8") != camera_color("s110_s_cam_8")
    assert all(isinstance(channel, int) for channel in camera_color("s110_s_cam_8"))


def _fov_view():
    view = np.full((50, 50, 3), 255, dtype=np.uint8)
    transform = np.diag([0.1, 0.1, 0.1, 1.0])
    result = draw_camera_fov(view, "cam", 20, 30, transform, IDENTITY3, CAMERA_ABOVE)
    return view, result


def test_draw_camera_fov_draws_in_place():
    view, result = _fov_view()
    assert result is view
    assert view.shape == (50, 50, 3)
    assert np.array_equal(view[40, 40], [255, 255, 255])


def test_draw_camera_fov_tints_inside_with_camera_color():
    _, result = _fov_view()
    color = np.array(camera_color("cam"), dtype=float)
    inside = result[10, 10].astype(float)
    # 20 % of the white view blended with 80 % of the filled overlay.
    assert np.allclose(inside, 0.2 * 255 + 0.8 * color, atol=1.0)


def test_draw_camera_fov_outline_is_darkest():
    _, result = _fov_view()
    outline = result[10, 0].astype(float)
    # The black outline blended with 20 % of the white view.
    assert np.allclose(outline, [51.0, 51.0, 51.0], atol=1.0)
    assert np.all(result[10, 0] <= result[10, 10])


def test_draw_camera_fov_rejects_bad_view():
    with pytest.raises(ValueError):
        draw_camera_fov(np.zeros((5, 5), dtype=np.uint8), "cam", 2, 2, np.eye(4), IDENTITY3, CAMERA_ABOVE)


def test_draw_map_background_marker_and_transform():
    utm_to_base = np.eye(4)
    utm_to_base[:3, 3] = [-5.0, 2.0, 0.0]
    view, utm_to_image = draw_map([], 100, 100, 1.0, utm_to_base, {})
    assert view.shape == (100, 100, 3)
    assert np.array_equal(view[0, 0], [255, 255, 255])
    assert np.array_equal(view[50, 50], [0, 0, 255])
    assert np.allclose(utm_to_image, base_to_image_center_transform(100, 100, 1.0) @ utm_to_base)


def test_draw_map_draws_lane_borders():
    border = [(-10.0, 20.0, 0.0), (10.0, 20.0, 0.0)]
    view, _ = draw_map([border], 100, 100, 1.0, np.eye(4), {})
    assert np.array_equal(view[70, 45], [0, 0, 0])
    assert np.array_equal(view[60, 45], [255, 255, 255])


def test_draw_map_draws_camera_footprint():
    projection = np.array([[10.0, 0.0, 0.0, 0.0], [0.0, 10.0, 0.0, 0.0], [0.0, 0.0, 1.0, -10.0]])
    cameras = {"cam": CameraProjection(projection, 20, 30)}
    with_camera, _ = draw_map([], 100, 100, 1.0, np.eye(4), cameras)
    without_camera, _ = draw_map([], 100, 100, 1.0, np.eye(4), {})
    assert np.array_equal(with_camera[:20], without_camera[:20])
    color = np.array(camera_color("cam"))
    if np.any(color < 255):
        assert np.any(with_camera[40, 65] < 255)
    assert np.all(with_camera[40, 65] >= np.minimum(color, 255))