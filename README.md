# slamkit

Building blocks for visual SLAM, written with NumPy and SciPy.

## Modules

- **`slamkit.lie`**: rotations and rigid motions. `SO3` and `SE3` provide
  `exp`, `log`, `inverse`, composition and point transformation with `*`, and
  `unit_quaternion`. `SE3` also has `matrix`, `matrix3x4` and `adjoint`. SE(3)
  tangent vectors are ordered translation first, then rotation. The module also
  has the helpers `hat`, `vee`, `angle_axis_to_matrix`, `quaternion_to_matrix`,
  `matrix_to_quaternion` and `euler_zyx`.
- **`slamkit.linalg`**: `gaussian_elimination` (no pivoting) and
  `solve_by_eigendecomposition`. Both raise `SingularMatrixError` on a zero
  pivot or a zero eigenvalue.
- **`slamkit.curve_fitting`**: `generate_data` samples noisy points of
  `y = exp(a x² + b x + c)`. `gauss_newton` fits `(a, b, c)` and returns a
  `FitResult` with the parameters, the reason it stopped and every accepted
  step.
- **`slamkit.algorithm`**: `triangulate` does linear SVD triangulation of one
  point from several world-to-camera poses and normalised-plane observations.
  It returns `None` when the solution is poorly conditioned. `to_vec2` converts
  a 2D point to an array.
- **`slamkit.camera`**: `Camera` is a pinhole camera with a stereo extrinsic.
  It has `K()` and converts between world, camera and pixel coordinates
  (`world2camera`, `camera2pixel`, `pixel2world` and so on).
- **`slamkit.entities`**: the classes `Feature`, `Frame` and `MapPoint`.
  `Frame.create` and `MapPoint.create` assign increasing ids, and
  `Frame.set_keyframe` assigns key-frame ids. A map point tracks the features
  that observe it, and holds them weakly.
- **`slamkit.world_map`**: `Map` stores key frames and landmarks and keeps a
  sliding window of active key frames, 7 by default. When the window overflows,
  it deactivates the closest key frame if one lies within 0.2 in `se(3)`
  distance, and otherwise the farthest one. It then drops that frame's
  observations and deactivates landmarks that nothing observes any more.
- **`slamkit.dataset`**: `load_calibration` reads four cameras from a
  KITTI-style `calib.txt`. `Dataset` loads that calibration with `init()`.
  `next_frame()` reads `image_0/NNNNNN.png` and `image_1/NNNNNN.png` as
  grayscale at half resolution and returns `None` at the end of the sequence.
- **`slamkit.trajectory`**: `read_trajectory` reads
  `time tx ty tz qx qy qz qw` records. `trajectory_rmse` gives the RMSE of
  `|log(gt⁻¹ · est)|` over two trajectories.
- **`slamkit.pose_graph`**: `PoseGraph` is a pose graph of `PoseVertex` and
  `PoseEdge`. `read` and `write` handle `VERTEX_SE3:QUAT` and `EDGE_SE3:QUAT`
  records; on reading, vertex 0 is fixed. `total_error` sums the edge errors,
  and `optimize` runs Levenberg-Marquardt with left-multiplied Lie-algebra
  updates and a sparse solver.
- **`slamkit.rgbd`**:
  - `read_poses` reads poses.
  - `depth_to_points` back-projects a depth image into coloured world points.
  - `undistort_image` removes radial-tangential distortion.
  - `disparity_to_pointcloud` turns a stereo disparity map into points.
  - `voxel_filter` and `statistical_outlier_removal` filter point clouds.
- **`slamkit.dense_mono`**: dense monocular depth estimation for 640×480
  images with fixed intrinsics. It searches along epipolar lines, matches
  windows by zero-mean NCC, triangulates and fuses depths with a Gaussian
  filter (`update`, `epipolar_search`, `update_depth_filter`). It also has
  `evaluate_depth` and `read_dataset_files`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Library use

```python
import numpy as np
from slamkit.lie import SE3, SO3, hat, vee

rotation = SO3.exp(np.array([0.0, 0.0, np.pi / 2]))
print(rotation.log())            # [0, 0, pi/2]
print(vee(hat(rotation.log())))  # the same vector

pose = SE3.from_quaternion(1.0, 0.0, 0.0, 0.0, np.array([1.0, 2.0, 3.0]))
print(SE3.exp(pose.log()).matrix())   # the 4x4 homogeneous matrix
print((pose * pose.inverse()).log())  # close to zero
```

```python
import numpy as np
from slamkit.algorithm import triangulate
from slamkit.lie import SE3

point = np.array([30.0, 20.0, 10.0])
poses = [SE3(translation=t) for t in ([0, 0, 0], [0, -10, 0], [0, 10, 0])]
observations = [(pose * point) / (pose * point)[2] for pose in poses]
print(triangulate(poses, observations))  # about [30, 20, 10]
```

## Commands

`slamkit-gauss-newton [--seed N]` fits the exponential curve to 100 synthetic
noisy points. It prints each Gauss-Newton step and the estimate.

`slamkit-trajectory-error [GROUNDTRUTH] [ESTIMATED]` prints the RMSE between
two trajectory files. The defaults are `./example/groundtruth.txt` and
`./example/estimated.txt`.

`slamkit-pose-graph GRAPH [--output result_lie.g2o] [--iterations 30]` reads
a `.g2o` pose graph, optimises it and writes the result.

`slamkit-dense-mapping DATASET [--output depth.png]` runs dense depth
estimation on a dataset directory. The directory holds
`first_200_frames_traj_over_table_input_sequence.txt`, an `images/` folder and
`depthmaps/scene_000.depth`. After each frame the command prints the error
against the reference depth. At the end it saves the depth map, rounded to
8 bits.

## What it does not do

- slamkit has no complete visual odometry pipeline. It does not detect
  features, track with optical flow, run a bundle-adjustment back end or drive
  frames through a loop. `Dataset`, `Camera`, `Map` and the entities are
  pieces to build one from.
- Nothing is displayed: there is no viewer for trajectories, point clouds or
  images.
- The `rgbd` functions return point arrays. There is no command for them, and
  they do not write point-cloud or map files.