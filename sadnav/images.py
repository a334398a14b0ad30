"""Bird's-eye and range images of point clouds, as BGR ``uint8`` arrays."""

from __future__ import annotations

import numpy as np

BEV_COLOR = (227, 143, 79)

_HSV_SECTORS = np.array([[1, 3, 0], [1, 0, 2], [3, 0, 1], [0, 2, 1], [0, 1, 3], [2, 1, 0]])


def _points(cloud) -> np.ndarray:
    arr = np.asarray(cloud, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"cloud must have shape (N, 3) or wider, got {arr.shape}")
    return arr[:, :3]


def _last_writes(rows: np.ndarray, cols: np.ndarray, width: int) -> np.ndarray:
    """Positions of the last entry for every distinct pixel, so later points win."""
    flat = rows * max(width, 1) + cols
    _, first_in_reversed = np.unique(flat[::-1], return_index=True)
    return len(flat) - 1 - first_in_reversed


def generate_bev_image(cloud, resolution=0.1, min_z=0.2, max_z=2.5) -> np.ndarray:
    """Top-down image of the cloud: white background, points between the heights coloured."""
    pts = _points(cloud)
    if len(pts) == 0:
        raise ValueError("cannot make an image of an empty cloud")
    if resolution <= 0:
        raise ValueError(f"resolution must be positive, got {resolution}")

    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    max_x, max_y = pts[:, 0].max(), pts[:, 1].max()
    inv_r = 1.0 / resolution
    rows = int((max_y - min_y) * inv_r)
    cols = int((max_x - min_x) * inv_r)

    x_center = 0.5 * (max_x + min_x)
    y_center = 0.5 * (max_y + min_y)
    x_center_image = float(cols // 2)
    y_center_image = float(rows // 2)

    image = np.full((rows, cols, 3), 255, dtype=np.uint8)
    xs = np.trunc((pts[:, 0] - x_center) * inv_r + x_center_image)
    ys = np.trunc((pts[:, 1] - y_center) * inv_r + y_center_image)
    keep = (
        (xs >= 0) & (xs < cols) & (ys >= 0) & (ys < rows)
        & (pts[:, 2] >= min_z) & (pts[:, 2] <= max_z)
    )
    image[ys[keep].astype(int), xs[keep].astype(int)] = BEV_COLOR
    return image


def generate_range_image(
    cloud,
    azimuth_resolution_deg=0.3,
    elevation_rows=16,
    elevation_range=15.0,
    lidar_height=1.128,
) -> np.ndarray:
    """Range image of a scan: columns by azimuth, rows by elevation, hue by range.

    The image is mirrored left to right and converted from HSV to BGR.
    Points on the sensor axis, for which no elevation exists, are skipped.
    """
    pts = _points(cloud)
    if azimuth_resolution_deg <= 0 or elevation_rows <= 0:
        raise ValueError("azimuth resolution and elevation rows must be positive")
    cols = int(360 / azimuth_resolution_deg)
    rows = int(elevation_rows)
    hsv = np.zeros((rows, cols, 3), dtype=np.uint8)
    ele_resolution = elevation_range * 2 / elevation_rows

    x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        azimuth = np.degrees(np.arctan2(y, x))
        ranges = np.hypot(x, y)
        elevation = np.degrees(np.arcsin((z - lidar_height) / ranges))
    azimuth = np.where(azimuth < 0, azimuth + 360, azimuth)

    valid = np.isfinite(elevation)
    col = np.trunc(azimuth / azimuth_resolution_deg)
    with np.errstate(invalid="ignore"):
        row = np.trunc((elevation + elevation_range) / ele_resolution + 0.5)
    valid &= (col >= 0) & (col < cols)
    valid &= np.isfinite(row) & (row >= 0) & (row < rows)

    col = col[valid].astype(int)
    row = row[valid].astype(int)
    hue = np.trunc(ranges[valid] / 100 * 255.0).astype(np.int64) % 256
    if len(row):
        last = _last_writes(row, col, cols)
        hsv[row[last], col[last], 0] = hue[last]
        hsv[row[last], col[last], 1] = 255
        hsv[row[last], col[last], 2] = 127

    return hsv_to_bgr(hsv[:, ::-1])


def hsv_to_bgr(image) -> np.ndarray:
    """Convert an 8-bit HSV image (hue 0..179 in half degrees) to BGR."""
    hsv = np.asarray(image)
    if hsv.ndim < 1 or hsv.shape[-1] != 3:
        raise ValueError(f"image must have 3 channels, got shape {hsv.shape}")
    h = np.mod(hsv[..., 0].astype(float) * (6.0 / 180.0), 6.0)
    s = hsv[..., 1].astype(float) / 255.0
    v = hsv[..., 2].astype(float) / 255.0

    sector = np.clip(np.floor(h).astype(int), 0, 5)
    frac = h - sector
    tab = np.stack(
        [v, v * (1.0 - s), v * (1.0 - s * frac), v * (1.0 - s * (1.0 - frac))], axis=-1
    )
    bgr = np.take_along_axis(tab, _HSV_SECTORS[sector], axis=-1)
    return np.clip(np.rint(bgr * 255.0), 0, 255).astype(np.uint8)