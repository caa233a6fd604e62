"""
Stage timing.

    with timeit("script") as t:
        script = client.generate_script(...)
    info(log, "script_done", seconds=t.timing.seconds)

`t.timing` is filled in when the block exits, even if it raised, so failure
logs can still report how long a Gemini call ran. `t.elapsed` reads the
clock while the block is still running (used for progress events).
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Timing:
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self.timing: Optional[Timing] = None
        self._start: Optional[float] = None

    def __enter__(self) -> "timeit":
        self._start = perf_counter()
        return self

    def __exit__(self, *exc_info) -> None:
        self.timing = Timing(self.name, perf_counter() - self._start, self.meta)

    @property
    def elapsed(self) -> float:
        if self.timing is not None:
            return self.timing.seconds
        return 0.0 if self._start is None else perf_counter() - self._start
