# latbench

Small latency benchmarks for POSIX systems. Each benchmark times one
operating-system operation over and over, in a loop calibrated to run long
enough to measure, and reports the median time of one operation.

| Command         | What is timed                                                 |
|-----------------|---------------------------------------------------------------|
| `lat-udp`       | a datagram round trip to a UDP echo server                    |
| `lat-proc`      | procedure call, fork+exit, fork+exec, fork+`/bin/sh -c`       |
| `lat-syscall`   | null call (`getppid`), read, write, stat, fstat, open/close   |
| `lat-sig`       | installing a signal handler, catching a signal                |
| `lat-usleep`    | how long a requested sleep really takes                       |
| `lat-rand`      | random number generation                                      |
| `lat-select`    | a zero-timeout `select()` over many file or TCP descriptors   |
| `lat-pmake`     | running N jobs in parallel, each doing a fixed amount of work |
| `lat-pagefault` | faulting in the pages of a memory-mapped file                 |

## Installation

```
pip install .
```

There are no dependencies outside the standard library. A POSIX system is
needed: the benchmarks fork, use signals, interval timers and `mmap`.

## Running the benchmarks

Every command accepts `-N <repetitions>`, the number of measurements to
take (default 11). The options `-P <parallelism>` and `-W <warmup>` are
accepted as well, but the commands always run a single benchmark process
without a warm-up period.

Results are written to standard error, one line per benchmark, for example
`Simple syscall: 0.1234 microseconds`.

```
lat-syscall null
lat-syscall stat /etc/hosts
lat-proc fork
lat-sig catch
lat-usleep -u nanosleep 1000
lat-rand
lat-select -n 100 file
lat-pmake 4 1000 5000
lat-pagefault -C /path/to/a/large/file
```

Notes on individual commands:

* `lat-proc exec` and `lat-proc shell` run `/tmp/hello`, which must exist.
* `lat-syscall` uses `/usr/include/linux/types.h` for stat, fstat and open
  unless a file is given.
* `lat-usleep` takes `-u usleep|nanosleep|select|itimer` and `-r` to ask
  for round-robin real-time scheduling.
* `lat-select` times descriptors of a temporary file (`file`) or of a
  connected local TCP socket on port 31233 (`tcp`).
* `lat-pagefault` needs a file of at least one megabyte; `-C` works on a
  private copy of it.

### UDP benchmark

`lat-udp` has a server side listening on port 31238. Start it, run the
client against it, then shut it down:

```
lat-udp -s
lat-udp -m 64 localhost
lat-udp -S localhost
```

The message size given with `-m` must lie between 4 bytes and 10 MB.

## Using the library

`latbench.stats` has statistics over sequences of numbers (`median`,
`mean`, `minimum`, `maximum`, `variance`, `moment`, `stderr`, `skew`,
`kurtosis`, `bootstrap_stderr`) and a weighted linear fit, `regression`,
which returns a `Regression`:

```python
from latbench.stats import median, regression

median([5, 1, 3])            # 3
fit = regression([0, 1, 2, 3], [1, 3, 5, 7])
fit.a, fit.b                 # 1.0, 2.0
```

`latbench.harness` holds the timing loop. `bench` repeatedly runs a body
that takes an iteration count and collects the timings into `Results`:

```python
from latbench.harness import bench, micro_line

def body(iterations):
    for _ in range(iterations):
        pass

results = bench(body, 0, 11)
print(micro_line("Empty loop", results))
```

Each benchmark is also available as a function returning `Results`, such as
`latbench.syscall.syscall_latency`, `latbench.proc.fork_latency`,
`latbench.signals.catch_latency`, `latbench.usleep.sleep_latency`,
`latbench.select_lat.select_latency` and `latbench.udplat.udp_latency`.

`latbench.memchain` builds pointer chains used to probe the memory
hierarchy (`stride_chain`, `thrash_chain`, `mem_chain`, `line_chain`,
`tlb_chain`), estimates the cache line size with `line_find` and memory
parallelism with `par_mem`.

`latbench.tcp` has TCP socket helpers (`tcp_server`, `tcp_accept`,
`tcp_connect`, `sock_optimize`, `sockport`).

`latbench.sched` decides which CPU a benchmark process is pinned to, from
the `LMBENCH_SCHED` environment variable (`choose_cpu`, `handle_scheduler`).

## What is not included

There is no pipe round-trip benchmark, no UNIX-domain socket latency or
connection benchmark, and no TCP transaction benchmark or TCP echo server.
The TCP helpers in `latbench.tcp` are used only by `lat-select tcp`.

## Tests

```
pip install .[test]
pytest
```