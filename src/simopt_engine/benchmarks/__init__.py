from .base import Benchmark
from .quadratic import QuadraticBenchmark
