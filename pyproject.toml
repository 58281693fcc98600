[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "tracegc"
version = "0.1.0"
description = "A tracing garbage collector over a simulated heap: mark-and-sweep and mark-and-compact collectors, handles, safepoints and managed data structures."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "garbage-collection",
    "mark-and-sweep",
    "mark-and-compact",
    "memory-management",
    "allocator",
    "semispaces",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tracegc-count = "tracegc.count:main"

[tool.setuptools.packages.find]
include = ["tracegc*"]

[tool.pytest.ini_options]
addopts = "-ra"
