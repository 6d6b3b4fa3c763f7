"""
Bounded-concurrency execution of independent tool units.

A unit is one install or one run of a single tool. Units never see each
other's state; a failing unit never stops its siblings.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkUnit:
    name: str
    action: Callable[[], object]


@dataclass(frozen=True)
class UnitError:
    unit: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.unit}: {self.error}"


class Scheduler:
    """Runs work units sequentially or with at most ``max_workers`` in flight."""

    def __init__(self, max_workers: int = 1):
        self.max_workers = max(1, int(max_workers))

    def run(self, units: Sequence[WorkUnit], parallel: bool = True) -> list[UnitError]:
        """Run every unit and return the errors they raised.

        Sequential mode keeps the caller's order. Parallel mode starts one
        thread per unit; each waits for a slot on a counting gate before it
        runs. Returns only after every unit has finished.
        """
        if not units:
            return []
        if not parallel or len(units) == 1:
            return self._run_sequential(units)
        return self._run_parallel(units)

    def _run_sequential(self, units: Sequence[WorkUnit]) -> list[UnitError]:
        errors: list[UnitError] = []
        for unit in units:
            try:
                unit.action()
            except Exception as e:
                logger.error(f"Unit {unit.name} failed: {e}")
                errors.append(UnitError(unit.name, e))
        return errors

    def _run_parallel(self, units: Sequence[WorkUnit]) -> list[UnitError]:
        gate = threading.BoundedSemaphore(self.max_workers)
        lock = threading.Lock()
        errors: list[UnitError] = []

        def guarded(unit: WorkUnit) -> None:
            with gate:
                try:
                    unit.action()
                except Exception as e:
                    logger.error(f"Unit {unit.name} failed: {e}")
                    with lock:
                        errors.append(UnitError(unit.name, e))

        logger.debug(
            f"Scheduling {len(units)} units with at most {self.max_workers} in flight"
        )
        with ThreadPoolExecutor(
            max_workers=len(units), thread_name_prefix="ossf-unit"
        ) as executor:
            futures = [executor.submit(guarded, unit) for unit in units]
            wait(futures)
        return errors
