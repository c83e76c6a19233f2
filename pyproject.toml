[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ringpool"
version = "0.1.0"
description = "Growable ring buffers, pooled byte buffers, a bounded worker pool and event-loop scaffolding for reactor-style servers"
requires-python = ">=3.10"
dependencies = []
keywords = ["ring buffer", "circular buffer", "buffer pool", "worker pool", "event loop", "reactor"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["ringpool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
