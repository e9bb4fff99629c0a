"""Benchmark execution pipeline (resolve, check out, build, time).

Modules:
    - git: Reference resolution and workspace checkout
    - build: Settings fingerprint and build cache
    - executor: Warm-up and timed runs, summary statistics
    - pipeline: Per-commit state machine and two-pass driver
    - models: ResolvedCommit, BenchmarkResult data structures
    - errors: Error hierarchy shared by all stages
"""
