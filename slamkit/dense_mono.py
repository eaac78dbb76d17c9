"""Dense monocular depth estimation along a known camera trajectory.

Each reference pixel keeps a Gaussian depth estimate (mean and variance).
New images refine it through an epipolar search with zero-mean NCC
matching, followed by triangulation and Gaussian fusion. Depth here is the
distance along the viewing ray of the reference camera.
"""

from __future__ import annotations

import argparse
import math
from pathlib import Path

import imageio.v3 as iio
import numpy as np

from slamkit.lie import SE3

BORDER = 20
WIDTH = 640
HEIGHT = 480
FX = 481.2
FY = -480.0
CX = 319.5
CY = 239.5
NCC_WINDOW_SIZE = 3
NCC_AREA = (2 * NCC_WINDOW_SIZE + 1) ** 2
MIN_COV = 0.1
MAX_COV = 10.0
NCC_THRESHOLD = 0.85
SEARCH_STEP = 0.7
MAX_HALF_LENGTH = 100.0
MIN_DEPTH = 0.1
INIT_DEPTH = 3.0
INIT_COV2 = 3.0

_TRAJECTORY_FILE = "first_200_frames_traj_over_table_input_sequence.txt"
_DEPTH_FILE = Path("depthmaps") / "scene_000.depth"
_POSE_FIELDS = 7

_OFFSET_X, _OFFSET_Y = np.meshgrid(
    np.arange(-NCC_WINDOW_SIZE, NCC_WINDOW_SIZE + 1),
    np.arange(-NCC_WINDOW_SIZE, NCC_WINDOW_SIZE + 1),
    indexing="ij",
)
_OFFSET_X = _OFFSET_X.ravel().astype(float)
_OFFSET_Y = _OFFSET_Y.ravel().astype(float)


def px2cam(px) -> np.ndarray:
    """Pixel to a point on the normalised image plane (z = 1)."""
    u, v = np.asarray(px, dtype=float).reshape(2)
    return np.array([(u - CX) / FX, (v - CY) / FY, 1.0])


def cam2px(p_cam) -> np.ndarray:
    """Point in camera coordinates to its pixel."""
    x, y, z = np.asarray(p_cam, dtype=float).reshape(3)
    return np.array([x * FX / z + CX, y * FY / z + CY])


def inside(pt) -> bool:
    """Whether a pixel lies inside the image, away from the border."""
    x, y = np.asarray(pt, dtype=float).reshape(2)
    return bool(x >= BORDER and y >= BORDER and x + BORDER < WIDTH and y + BORDER <= HEIGHT)


def _bilinear_many(image, xs, ys) -> np.ndarray:
    img = np.asarray(image, dtype=float)
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    ix = xs.astype(int)
    iy = ys.astype(int)
    xx = xs - np.floor(xs)
    yy = ys - np.floor(ys)
    return (
        (1 - xx) * (1 - yy) * img[iy, ix]
        + xx * (1 - yy) * img[iy, ix + 1]
        + (1 - xx) * yy * img[iy + 1, ix]
        + xx * yy * img[iy + 1, ix + 1]
    ) / 255.0


def bilinear(image, pt) -> float:
    """Bilinearly interpolated grey value at ``pt = (x, y)``, scaled to [0, 1]."""
    x, y = np.asarray(pt, dtype=float).reshape(2)
    return float(_bilinear_many(image, np.array([x]), np.array([y]))[0])


def ncc(ref, curr, pt_ref, pt_curr) -> float:
    """Zero-mean normalised cross-correlation of two windows around the given pixels."""
    rx, ry = np.asarray(pt_ref, dtype=float).reshape(2)
    qx, qy = np.asarray(pt_curr, dtype=float).reshape(2)
    ref_img = np.asarray(ref, dtype=float)
    values_ref = ref_img[(_OFFSET_Y + ry).astype(int), (_OFFSET_X + rx).astype(int)] / 255.0
    values_curr = _bilinear_many(curr, _OFFSET_X + qx, _OFFSET_Y + qy)

    centred_ref = values_ref - values_ref.sum() / NCC_AREA
    centred_curr = values_curr - values_curr.sum() / NCC_AREA
    numerator = float(centred_ref @ centred_curr)
    denominator1 = float(centred_ref @ centred_ref)
    denominator2 = float(centred_curr @ centred_curr)
    return numerator / math.sqrt(denominator1 * denominator2 + 1e-10)


def epipolar_search(ref, curr, t_c_r: SE3, pt_ref, depth_mu: float, depth_cov: float):
    """Search the epipolar segment in ``curr`` for the match of ``pt_ref``.

    ``depth_cov`` is the standard deviation of the depth. Returns
    ``(pt_curr, epipolar_direction)`` or ``None`` when no window scores
    at least the NCC threshold.
    """
    pt_ref = np.asarray(pt_ref, dtype=float).reshape(2)
    f_ref = px2cam(pt_ref)
    f_ref = f_ref / np.linalg.norm(f_ref)

    px_mean_curr = cam2px(t_c_r * (f_ref * depth_mu))
    d_min = max(depth_mu - 3 * depth_cov, MIN_DEPTH)
    d_max = depth_mu + 3 * depth_cov
    px_min_curr = cam2px(t_c_r * (f_ref * d_min))
    px_max_curr = cam2px(t_c_r * (f_ref * d_max))

    epipolar_line = px_max_curr - px_min_curr
    length = float(np.linalg.norm(epipolar_line))
    direction = epipolar_line / length if length > 0.0 else epipolar_line
    half_length = min(0.5 * length, MAX_HALF_LENGTH)

    best_ncc = -1.0
    best_px_curr = None
    step = -half_length
    while step <= half_length:
        px_curr = px_mean_curr + step * direction
        step += SEARCH_STEP
        if not inside(px_curr):
            continue
        score = ncc(ref, curr, pt_ref, px_curr)
        if score > best_ncc:
            best_ncc = score
            best_px_curr = px_curr
    if best_ncc < NCC_THRESHOLD or best_px_curr is None:
        return None
    return best_px_curr, direction


def _angle(cosine: float) -> float:
    return math.acos(min(1.0, max(-1.0, cosine)))


def update_depth_filter(pt_ref, pt_curr, t_c_r: SE3, epipolar_direction, depth, depth_cov2):
    """Triangulate a match and fuse it into ``depth`` and ``depth_cov2`` in place.

    Returns the fused ``(mean, variance)`` at the reference pixel.
    """
    pt_ref = np.asarray(pt_ref, dtype=float).reshape(2)
    pt_curr = np.asarray(pt_curr, dtype=float).reshape(2)
    epipolar_direction = np.asarray(epipolar_direction, dtype=float).reshape(2)

    t_r_c = t_c_r.inverse()
    f_ref = px2cam(pt_ref)
    f_ref = f_ref / np.linalg.norm(f_ref)
    f_curr = px2cam(pt_curr)
    f_curr = f_curr / np.linalg.norm(f_curr)

    # d_ref * f_ref = d_cur * (R_RC * f_cur) + t_RC, solved in the least-squares sense.
    t = t_r_c.translation
    f2 = t_r_c.rotation * f_curr
    b = np.array([t @ f_ref, t @ f2])
    a = np.array([[f_ref @ f_ref, -(f_ref @ f2)], [f_ref @ f2, -(f2 @ f2)]])
    ans = np.linalg.inv(a) @ b
    xm = ans[0] * f_ref
    xn = t + ans[1] * f2
    depth_estimation = float(np.linalg.norm((xm + xn) / 2.0))

    # Uncertainty from a one-pixel error along the epipolar line.
    t_norm = float(np.linalg.norm(t))
    alpha = _angle(float(f_ref @ t) / t_norm)
    f_curr_prime = px2cam(pt_curr + epipolar_direction)
    f_curr_prime = f_curr_prime / np.linalg.norm(f_curr_prime)
    beta_prime = _angle(float(f_curr_prime @ -t) / t_norm)
    gamma = math.pi - alpha - beta_prime
    p_prime = t_norm * math.sin(beta_prime) / math.sin(gamma)
    d_cov2 = (p_prime - depth_estimation) ** 2

    row, col = int(pt_ref[1]), int(pt_ref[0])
    mu = float(depth[row, col])
    sigma2 = float(depth_cov2[row, col])
    mu_fuse = (d_cov2 * mu + sigma2 * depth_estimation) / (sigma2 + d_cov2)
    sigma_fuse2 = (sigma2 * d_cov2) / (sigma2 + d_cov2)
    depth[row, col] = mu_fuse
    depth_cov2[row, col] = sigma_fuse2
    return mu_fuse, sigma_fuse2


def update(ref, curr, t_c_r: SE3, depth, depth_cov2) -> int:
    """Refine every unconverged pixel of the depth map; return how many were updated."""
    cov2 = np.asarray(depth_cov2)
    active = np.zeros(cov2.shape, dtype=bool)
    region = cov2[BORDER : HEIGHT - BORDER, BORDER : WIDTH - BORDER]
    active[BORDER : HEIGHT - BORDER, BORDER : WIDTH - BORDER] = (region >= MIN_COV) & (region <= MAX_COV)

    updated = 0
    for x, y in np.argwhere(active.T):
        pt_ref = np.array([float(x), float(y)])
        match = epipolar_search(
            ref, curr, t_c_r, pt_ref, float(depth[y, x]), math.sqrt(float(depth_cov2[y, x]))
        )
        if match is None:
            continue
        pt_curr, direction = match
        update_depth_filter(pt_ref, pt_curr, t_c_r, direction, depth, depth_cov2)
        updated += 1
    return updated


def evaluate_depth(depth_truth, depth_estimate) -> tuple[float, float]:
    """Mean error and mean squared error inside the border, as ``(mean, mean_squared)``."""
    truth = np.asarray(depth_truth, dtype=float)
    estimate = np.asarray(depth_estimate, dtype=float)
    if truth.shape != estimate.shape:
        raise ValueError("depth maps must have the same shape")
    rows, cols = truth.shape
    error = truth[BORDER : rows - BORDER, BORDER : cols - BORDER] - estimate[
        BORDER : rows - BORDER, BORDER : cols - BORDER
    ]
    if error.size == 0:
        raise ValueError("depth maps are too small for the border")
    return float(error.mean()), float((error * error).mean())


def read_dataset_files(path):
    """Read image names, camera-to-world poses and the reference depth map.

    Returns ``(image_files, poses, ref_depth)``. Raises ``FileNotFoundError``
    when a file is missing and ``ValueError`` when one is malformed.
    """
    root = Path(path)
    tokens = (root / _TRAJECTORY_FILE).read_text().split()
    record = _POSE_FIELDS + 1
    if len(tokens) % record:
        raise ValueError("trajectory file holds an incomplete record")
    image_files: list[Path] = []
    poses: list[SE3] = []
    for start in range(0, len(tokens), record):
        name = tokens[start]
        try:
            tx, ty, tz, qx, qy, qz, qw = (float(v) for v in tokens[start + 1 : start + record])
        except ValueError as exc:
            raise ValueError(f"malformed pose for image {name}") from exc
        image_files.append(root / "images" / name)
        poses.append(SE3.from_quaternion(qw, qx, qy, qz, (tx, ty, tz)))

    values = (root / _DEPTH_FILE).read_text().split()
    needed = HEIGHT * WIDTH
    if len(values) < needed:
        raise ValueError(f"depth map holds {len(values)} values, expected {needed}")
    try:
        ref_depth = np.array(values[:needed], dtype=float).reshape(HEIGHT, WIDTH) / 100.0
    except ValueError as exc:
        raise ValueError("depth map holds a value that is not a number") from exc
    return image_files, poses, ref_depth


def _read_gray(path) -> np.ndarray | None:
    try:
        image = iio.imread(path)
    except (OSError, ValueError):
        return None
    if image.ndim == 3:
        gray = image[..., :3].astype(float) @ np.array([0.299, 0.587, 0.114])
        image = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    return image


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Dense depth estimation from a monocular sequence.")
    parser.add_argument("dataset", help="path to the test dataset")
    parser.add_argument("--output", default="depth.png")
    args = parser.parse_args(argv)

    try:
        image_files, poses, ref_depth = read_dataset_files(args.dataset)
    except (OSError, ValueError):
        print("Reading image files failed!")
        return 1
    print(f"read total {len(image_files)} files.")
    if not image_files:
        print("Reading image files failed!")
        return 1

    ref = _read_gray(image_files[0])
    if ref is None:
        print("Reading image files failed!")
        return 1
    pose_ref = poses[0]
    depth = np.full((HEIGHT, WIDTH), INIT_DEPTH)
    depth_cov2 = np.full((HEIGHT, WIDTH), INIT_COV2)

    for index in range(1, len(image_files)):
        print(f"*** loop {index} ***")
        curr = _read_gray(image_files[index])
        if curr is None:
            continue
        t_c_r = poses[index].inverse() * pose_ref
        update(ref, curr, t_c_r, depth, depth_cov2)
        mean_error, mean_squared = evaluate_depth(ref_depth, depth)
        print(f"Average squared error = {mean_squared:g}, average error: {mean_error:g}")

    print("estimation returns, saving depth map ...")
    iio.imwrite(args.output, np.clip(np.rint(depth), 0, 255).astype(np.uint8))
    print("done.")
    return 0