"""
Background Workers
Periodic jobs started with the application
"""
import asyncio
import logging
import os
from .reconcile import reconcile_follow_counts

logger = logging.getLogger(__name__)

class BaseWorker:
    """Base worker class running a job on a fixed interval"""

    def __init__(self, name: str, interval: float):
        self.name = name
        self.interval = interval
        self.running = False
        self.processed_count = 0
        self.error_count = 0

    async def start(self):
        """Start the worker"""
        self.running = True
        logger.info(f"Starting {self.__class__.__name__} every {self.interval}s")

        while self.running:
            try:
                await self.run_once()
                self.processed_count += 1
            except Exception as e:
                logger.error(f"Worker {self.__class__.__name__} error: {str(e)}")
                self.error_count += 1
            await asyncio.sleep(self.interval)

    async def stop(self):
        """Stop the worker"""
        self.running = False
        logger.info(f"Stopping {self.__class__.__name__}")

    async def run_once(self):
        """Run one job iteration - to be implemented by subclasses"""
        raise NotImplementedError

class FollowCountReconcileWorker(BaseWorker):
    """Recomputes follow counters so drift never outlives one interval"""

    def __init__(self, interval: float):
        super().__init__('follow_count_reconcile', interval)
        self.last_summary = None

    async def run_once(self):
        self.last_summary = await reconcile_follow_counts(source='worker')
        return self.last_summary

# Worker manager
class WorkerManager:
    """Manages all workers"""

    def __init__(self, workers=None):
        self.workers = workers if workers is not None else self._configured_workers()
        self.tasks = []

    @staticmethod
    def _configured_workers():
        workers = []
        interval = float(os.getenv('FOLLOW_RECONCILE_INTERVAL_SECONDS', '0'))
        if interval > 0:
            workers.append(FollowCountReconcileWorker(interval))
        return workers

    async def start_all(self):
        """Start all workers"""
        for worker in self.workers:
            task = asyncio.create_task(worker.start())
            self.tasks.append(task)

        logger.info(f"Started {len(self.workers)} background workers")

    async def stop_all(self):
        """Stop all workers"""
        for worker in self.workers:
            await worker.stop()

        for task in self.tasks:
            task.cancel()

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        logger.info("All background workers stopped")

    def get_stats(self):
        """Get worker statistics"""
        return {
            worker.name: {
                "processed": worker.processed_count,
                "errors": worker.error_count,
                "running": worker.running
            }
            for worker in self.workers
        }
