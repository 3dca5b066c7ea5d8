"""Developer-tools heuristics and the consensus rule that combines them"""
import time
from typing import Callable, NamedTuple

SIZE_THRESHOLD = 160  # pixels
TIMING_THRESHOLD = 120  # milliseconds
LOOP_ITERATIONS = 100000


class DetectionSignals(NamedTuple):
    """Outcome of the three independent probes."""
    size: bool      # outer/inner window delta beyond the threshold
    console: bool   # console rendered the inspection probe
    timing: bool    # busy loop slower than the threshold


def detect_devtools(signals: DetectionSignals) -> bool:
    """Combine signals: the console probe alone is definitive, otherwise 2 of 3 must agree."""
    if signals.console:
        return True
    return sum(1 for signal in signals if signal) >= 2


def size_signal(
    outer_width: int,
    inner_width: int,
    outer_height: int,
    inner_height: int,
    threshold: int = SIZE_THRESHOLD,
) -> bool:
    return outer_width - inner_width > threshold or outer_height - inner_height > threshold


def timing_signal(elapsed_ms: float, threshold: int = TIMING_THRESHOLD) -> bool:
    return elapsed_ms > threshold


def measure_busy_loop(
    iterations: int = LOOP_ITERATIONS,
    timer: Callable[[], float] = time.perf_counter,
) -> float:
    """Milliseconds spent in a bounded empty loop."""
    start = timer()
    for _ in range(iterations):
        pass
    return (timer() - start) * 1000


def default_probe() -> DetectionSignals:
    """Probe for a non-browser client: only the timing signal is observable."""
    return DetectionSignals(size=False, console=False, timing=timing_signal(measure_busy_loop()))
