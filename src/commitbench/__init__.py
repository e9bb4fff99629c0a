"""Benchmark a series of git commits: resolve, check out, build once, time runs."""

__version__ = "0.1.0"
