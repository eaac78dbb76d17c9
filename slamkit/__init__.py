"""Visual SLAM building blocks: Lie groups, geometry, optimisation and mapping."""

__version__ = "0.1.0"

__all__ = [
    "algorithm",
    "camera",
    "curve_fitting",
    "dataset",
    "dense_mono",
    "entities",
    "lie",
    "linalg",
    "pose_graph",
    "rgbd",
    "trajectory",
    "world_map",
]