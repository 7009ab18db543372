[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "linefit"
version = "0.1.0"
description = "Ground segmentation of 3D point clouds by fitting lines in angular segments"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["point cloud", "lidar", "ground segmentation", "line fitting", "ply"]
classifiers = [
    "Development Status :: 4 - Beta",
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
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
linefit = "linefit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["linefit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
