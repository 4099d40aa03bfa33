[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lmd"
version = "2.3.0"
description = "Livestatus daemon core: filter matching, logging, pid files, cluster node distribution and a signal-driven command line"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "livestatus",
    "monitoring",
    "filter",
    "cluster",
    "daemon",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lmd = "lmd.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["lmd"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
