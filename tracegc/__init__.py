"""A tracing garbage collector over a simulated heap, with managed data structures and a word-count example."""

__version__ = "0.1.0"