[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dispeys"
version = "0.0.1"
description = "Per-application button pages for the Ulanzi D200 stream deck on Linux desktops"
requires-python = ">=3.10"
keywords = ["ulanzi", "d200", "stream deck", "hidraw", "macro pad", "x11"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: X11 Applications",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware :: Universal Serial Bus (USB) :: Human Interface Device (HID)",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dispeys = "dispeys.app:main"

[tool.hatch.build.targets.wheel]
packages = ["dispeys"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
