[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "latbench"
version = "3.0a4"
description = "Operating-system latency micro-benchmarks: UDP, select, processes, system calls, signals, timers, page faults and memory chains."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "benchmark",
    "latency",
    "microbenchmark",
    "operating system",
    "sockets",
    "memory",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lat-udp = "latbench.udplat:main"
lat-proc = "latbench.proc:main"
lat-syscall = "latbench.syscall:main"
lat-sig = "latbench.signals:main"
lat-usleep = "latbench.usleep:main"
lat-rand = "latbench.rand:main"
lat-select = "latbench.select_lat:main"
lat-pmake = "latbench.pmake:main"
lat-pagefault = "latbench.pagefault:main"

[tool.hatch.build.targets.wheel]
packages = ["latbench"]

[tool.hatch.build.targets.sdist]
include = ["latbench", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
