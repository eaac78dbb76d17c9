[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slamkit"
version = "0.1.0"
description = "Visual SLAM building blocks: Lie groups, triangulation, pose graphs, curve fitting and dense mapping."
requires-python = ">=3.10"
keywords = [
    "slam",
    "visual-odometry",
    "lie-groups",
    "se3",
    "pose-graph",
    "triangulation",
    "depth-estimation",
    "point-cloud",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
]
dependencies = [
    "numpy",
    "scipy",
    "imageio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
slamkit-gauss-newton = "slamkit.curve_fitting:main"
slamkit-trajectory-error = "slamkit.trajectory:main"
slamkit-pose-graph = "slamkit.pose_graph:main"
slamkit-dense-mapping = "slamkit.dense_mono:main"

[tool.hatch.build.targets.wheel]
packages = ["slamkit"]

[tool.hatch.build.targets.sdist]
include = ["slamkit", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
warn_unused_ignores = true
