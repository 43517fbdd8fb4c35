"""
Background task scheduler.
Periodically flushes the document store to disk.
"""
import asyncio
import logging

from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)


class Scheduler:
    """Class for managing background tasks."""
    def __init__(self, storage: FileStorage, save_interval_minutes: float = 5):
        self.storage = storage
        self.save_interval_minutes = save_interval_minutes
        self.tasks = {}
        self.running = False

    async def start(self):
        if self.running:
            return
        self.running = True
        self.tasks["save"] = asyncio.create_task(
            self._periodic_save(interval_minutes=self.save_interval_minutes)
        )
        logger.info("Scheduler started")

    async def stop(self):
        if not self.running:
            return
        self.running = False
        for name, task in list(self.tasks.items()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            del self.tasks[name]
        logger.info("Scheduler stopped")

    async def _periodic_save(self, interval_minutes: float = 5):
        try:
            while self.running:
                await asyncio.sleep(interval_minutes * 60)
                try:
                    self.storage.periodic_save()
                    logger.info("Store flushed")
                except OSError as e:
                    logger.error(f"Failed to flush store: {e}")
        except asyncio.CancelledError:
            logger.info("Periodic save task cancelled")
            raise
