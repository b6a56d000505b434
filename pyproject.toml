[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "madphase"
version = "0.1.0"
description = "Batched phase-space kinematics, tensors and a dataflow runtime for event generation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["physics", "phase space", "kinematics", "event generation", "monte carlo"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Physics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["madphase"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
