"""
Periodic background workers
"""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """
    Runs ``run_once`` every ``interval_seconds`` on its own asyncio task.

    An exception from one tick is logged and the loop carries on with the next
    tick; only cancellation stops it.
    """

    name = "worker"

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def run_once(self):
        raise NotImplementedError

    async def start(self):
        """Start the background worker"""
        if self.running:
            logger.warning(f"⚠️  {self.name} already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"✅ {self.name} started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Stop the background worker"""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info(f"🛑 {self.name} stopped")

    async def tick(self):
        """One isolated iteration: failures are logged, never raised"""
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Error in {self.name}: {e}", exc_info=True)

    async def _run(self):
        """Main worker loop"""
        while self.running:
            await self.tick()
            await asyncio.sleep(self.interval_seconds)
