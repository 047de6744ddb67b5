[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "taddelivery"
version = "0.1.0"
description = "Inspect and unpack DSi TAD title packages, ROM headers, save files and NAND boot sectors"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["dsi", "tad", "wad", "srl", "nand", "title", "aes-ccm", "fat12"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Packaging",
    "Topic :: System :: Filesystems",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
taddelivery = "taddelivery.tad:main"

[tool.hatch.build.targets.wheel]
packages = ["taddelivery"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
