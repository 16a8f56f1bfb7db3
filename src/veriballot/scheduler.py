"""Planificador de tareas periódicas con guarda de vuelo único.

English:
    Periodic task scheduler. Each task has its own timer and its own
    single-flight guard: a tick that finds the previous run of the same task
    still outstanding returns immediately, while other tasks keep running.
    Action failures are logged and counted; they never stop the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

PollAction = Callable[[], Awaitable[None]]


class PollTask:
    """Tarea periódica con nombre, periodo y guarda privada.

    English: Named recurring task. The guard is a private ``asyncio.Lock`` that
    is only ever taken through a non-blocking try-acquire.
    """

    def __init__(self, name: str, period: float, action: PollAction) -> None:
        if period <= 0:
            raise ValueError(f"period must be positive for task {name}")
        self.name = name
        self.period = float(period)
        self.action = action
        self._guard = asyncio.Lock()
        self.runs = 0
        self.failures = 0
        self.skips = 0
        self.last_error: Optional[BaseException] = None
        self.last_duration: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        return self._guard.locked()

    async def try_acquire(self) -> bool:
        if self._guard.locked():
            return False
        # Nobody ever waits on the guard, so this acquire never suspends.
        await self._guard.acquire()
        return True

    def release(self) -> None:
        self._guard.release()

    def __repr__(self) -> str:
        return f"PollTask(name={self.name!r}, period={self.period}, in_flight={self.in_flight})"


class PollingScheduler:
    """Registro de tareas periódicas independientes.

    English: Registry of independent periodic tasks. ``start`` launches one
    ticker per task; each tick fires ``run_task`` in its own asyncio task so a
    slow action never delays another task's timer.
    """

    def __init__(self, tasks: Iterable[PollTask] = ()) -> None:
        self._tasks: Dict[str, PollTask] = {}
        self._tickers: List["asyncio.Task[None]"] = []
        self._runs: Set["asyncio.Task[bool]"] = set()
        for task in tasks:
            self.register(task)

    @property
    def tasks(self) -> Dict[str, PollTask]:
        return dict(self._tasks)

    @property
    def running(self) -> bool:
        return bool(self._tickers)

    def get(self, name: str) -> PollTask:
        return self._tasks[name]

    def register(self, task: PollTask) -> PollTask:
        if task.name in self._tasks:
            raise ValueError(f"task already registered: {task.name}")
        if self.running:
            raise RuntimeError("tasks must be registered before the scheduler starts")
        self._tasks[task.name] = task
        logger.info("poll_task_registered task=%s period=%s", task.name, task.period)
        return task

    async def run_task(self, task: PollTask) -> bool:
        """Ejecuta una vez la tarea si su guarda está libre.

        English: Run the task once if its guard is free. Returns ``False``
        without doing anything when a previous run is still outstanding. The
        guard is released whatever the action's outcome.
        """
        if not await task.try_acquire():
            task.skips += 1
            logger.debug("poll_task_skipped task=%s reason=in_flight", task.name)
            return False
        start = time.monotonic()
        try:
            task.runs += 1
            await task.action()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            task.failures += 1
            task.last_error = exc
            logger.warning(
                "poll_task_failed task=%s error_type=%s error=%s",
                task.name,
                type(exc).__name__,
                exc,
            )
        finally:
            task.last_duration = time.monotonic() - start
            task.release()
        return True

    async def run_all_once(self) -> Dict[str, bool]:
        names = list(self._tasks)
        results = await asyncio.gather(*(self.run_task(self._tasks[name]) for name in names))
        return dict(zip(names, results))

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        for task in self._tasks.values():
            self._tickers.append(loop.create_task(self._tick(task), name=f"ticker:{task.name}"))
        logger.info("scheduler_started tasks=%s", sorted(self._tasks))

    async def run_forever(self) -> None:
        self.start()
        try:
            await asyncio.gather(*self._tickers)
        finally:
            await self.stop()

    async def stop(self) -> None:
        pending = [*self._tickers, *self._runs]
        for item in pending:
            item.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tickers.clear()
        self._runs.clear()
        logger.info("scheduler_stopped")

    async def _tick(self, task: PollTask) -> None:
        loop = asyncio.get_running_loop()
        while True:
            run = loop.create_task(self.run_task(task), name=f"poll:{task.name}")
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)
            await asyncio.sleep(task.period)
