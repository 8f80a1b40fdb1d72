[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scannode"
version = "0.1.0"
description = "Building blocks of a detection-bot scan node: configuration, bot I/O, container management and release manifests."
requires-python = ">=3.10"
keywords = ["scan-node", "detection-bots", "containers", "configuration", "release-manifest"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
scannode-manifest = "scannode.manifest:main"

[tool.hatch.build.targets.wheel]
packages = ["scannode"]

[tool.hatch.build.targets.sdist]
include = ["scannode", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
