[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "migparted"
version = "0.5.5"
description = "Declarative MIG partition configuration files, hooks and node-agent helpers"
requires-python = ">=3.10"
keywords = ["mig", "gpu", "partitioning", "configuration", "kubernetes", "hooks"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["migparted"]

[tool.hatch.build.targets.sdist]
include = ["migparted", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
