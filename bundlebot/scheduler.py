"""
Periodic maintenance scheduler (rebalancing, balance monitoring).

Each tick is a bounded unit of work: an optional timeout and a fixed number of
attempts. Ticks are issued from one cancellable asyncio task per job.
"""
import asyncio
import logging
import time
from typing import Optional, Any, Awaitable, Callable, Dict, List

from .utils import get_terminal_colors

colors = get_terminal_colors()
logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs `work` every `interval` seconds until stopped."""
    
    def __init__(
        self,
        name: str,
        interval: float,
        work: Callable[[], Awaitable[Any]],
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        tick_timeout: Optional[float] = None
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.name = name
        self.interval = interval
        self.work = work
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.tick_timeout = tick_timeout
        self.ticks = 0
        self.failures = 0
        self.last_tick_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
    
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
    
    async def run_tick(self) -> bool:
        """
        Run one tick with retries.
        
        Returns:
            True if an attempt succeeded, False once all attempts failed
        """
        self.ticks += 1
        self.last_tick_at = time.time()
        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.tick_timeout:
                    await asyncio.wait_for(self.work(), timeout=self.tick_timeout)
                else:
                    await self.work()
                logger.debug(f"{colors['DIM']}Tick {self.ticks} of '{self.name}' done{colors['RESET']}")
                return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Task '{self.name}' attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
        
        self.failures += 1
        logger.error(f"{colors['RED']}Task '{self.name}' tick {self.ticks} failed after {self.max_attempts} attempts{colors['RESET']}")
        return False
    
    async def _loop(self):
        while True:
            await self.run_tick()
            await asyncio.sleep(self.interval)
    
    def start(self):
        if self.is_running:
            return
        logger.info(f"{colors['DIM']}Starting task '{self.name}' every {self.interval}s{colors['RESET']}")
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
    
    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"{colors['DIM']}Stopped task '{self.name}'{colors['RESET']}")


class Scheduler:
    """Named collection of periodic tasks."""
    
    def __init__(self):
        self._tasks: Dict[str, PeriodicTask] = {}
    
    def add(self, task: PeriodicTask) -> PeriodicTask:
        if task.name in self._tasks:
            raise ValueError(f"Task '{task.name}' already scheduled")
        self._tasks[task.name] = task
        return task
    
    def every(self, name: str, interval: float, work: Callable[[], Awaitable[Any]], **kwargs) -> PeriodicTask:
        return self.add(PeriodicTask(name, interval, work, **kwargs))
    
    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)
    
    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks.values())
    
    def start_all(self):
        for task in self._tasks.values():
            task.start()
    
    async def stop_all(self):
        for task in self._tasks.values():
            await task.stop()
