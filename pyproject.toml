[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "motionlite"
version = "0.1.0"
description = "Camera motion detector that records short MJPEG clips and serves them over a small HTTP server"
requires-python = ">=3.10"
keywords = ["motion detection", "camera", "mjpeg", "avi", "surveillance", "http"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Video :: Capture",
]
dependencies = [
    "numpy",
    "pillow",
    "pygame",
]

[project.optional-dependencies]
test = [
    "pytest",
    "numpy",
    "pillow",
]

[project.scripts]
motionlite = "motionlite.app:main"

[tool.hatch.build.targets.wheel]
packages = ["motionlite"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
