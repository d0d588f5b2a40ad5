[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lmkforge"
version = "0.1.0"
description = "Transform and export planetary terrain landmark maps, with map projections, PLY point clouds and image annotation"
requires-python = ">=3.10"
keywords = [
    "landmark",
    "terrain",
    "elevation",
    "map projection",
    "planetary",
    "ecef",
    "stereographic",
    "orthographic",
    "ply",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: GIS",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lmkforge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
