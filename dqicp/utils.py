"""General utility functions."""

import time
from collections import defaultdict
from functools import wraps


# Accumulated wall time (seconds) and call counts per decorated function
TIMINGS = defaultdict(float)
CALLS = defaultdict(int)


def time_function(func):
    """
    Decorator to time function execution.
    For recursive functions, only times the top-level call.

    Elapsed time is added to ``TIMINGS[func.__qualname__]``; use
    ``report_timings`` to print the totals.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not hasattr(wrapper, '_in_call'):
            wrapper._in_call = False

        if not wrapper._in_call:
            wrapper._in_call = True
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                TIMINGS[func.__qualname__] += time.perf_counter() - start_time
                CALLS[func.__qualname__] += 1
                wrapper._in_call = False
        else:
            return func(*args, **kwargs)

    return wrapper


def reset_timings():
    TIMINGS.clear()
    CALLS.clear()


def report_timings():
    """Print accumulated timings, slowest first."""
    if not TIMINGS:
        return
    print(f"{'Function':<40} {'Calls':>8} {'Total (ms)':>12}")
    print("-" * 62)
    for name, elapsed in sorted(TIMINGS.items(), key=lambda item: -item[1]):
        print(f"{name:<40} {CALLS[name]:>8} {elapsed * 1e3:>12.3f}")
