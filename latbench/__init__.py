"""Latency micro-benchmarks for POSIX systems, with timing, statistics and memory-chain helpers."""

__version__ = "3.0a4"