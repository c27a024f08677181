[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prehnite"
version = "0.59.0"
description = "Columnar row batches and a durable, group-committed transaction commit log for an MVCC storage engine."
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "mvcc", "commit-log", "columnar", "group-commit", "storage-engine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["prehnite"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
