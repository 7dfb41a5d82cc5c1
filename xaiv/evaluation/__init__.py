"""
Learner benchmarking.

Includes:
- benchmark: tasks, resampling schemes and the benchmark runner
"""

from .benchmark import BenchmarkResult, BenchmarkRunner, Resampling, Task, benchmark

__all__ = ["BenchmarkResult", "BenchmarkRunner", "Resampling", "Task", "benchmark"]
