"""
Reconciliation Worker

Background service that keeps the earnings ledger and the derived post
aggregates honest:
- Every N minutes: credit engagements whose earnings were missed
- Hourly: rebuild post counters / consumption aggregates from source rows

Uses APScheduler for job scheduling.
"""
import asyncio
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from contentlynk.config import settings
from contentlynk.services.reconciliation_service import ReconciliationService

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger('reconciliation_worker')


class ReconciliationWorker:
    """Background worker for reconciliation sweeps."""

    def __init__(self, database_url: str | None = None):
        self.engine = create_async_engine(database_url or settings.database_url, echo=False)
        self.async_session = async_sessionmaker(
            self.engine, expire_on_commit=False
        )
        self.scheduler = AsyncIOScheduler()

    async def start(self):
        """Start the worker and scheduler."""
        logger.info('Starting Reconciliation Worker...')

        self.scheduler.add_job(
            self._run_earnings_sweep,
            IntervalTrigger(minutes=settings.reconcile_interval_minutes),
            id='earnings_sweep',
            name='Missed Earnings Sweep',
            replace_existing=True,
            max_instances=1,
        )

        # Top of every hour
        self.scheduler.add_job(
            self._run_aggregate_rebuild,
            CronTrigger(minute=0),
            id='aggregate_rebuild',
            name='Post Aggregate Rebuild',
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        logger.info('Scheduler started. Jobs:')
        for job in self.scheduler.get_jobs():
            logger.info(f'  - {job.name}: next run at {job.next_run_time}')

        # Keep running
        try:
            while True:
                await asyncio.sleep(60)
        except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
            logger.info('Shutting down...')
            self.scheduler.shutdown()
            await self.engine.dispose()

    async def _run_earnings_sweep(self):
        """Credit engagements that have no earnings record yet."""
        logger.info('Running missed earnings sweep...')
        try:
            async with self.async_session() as session:
                async with session.begin():
                    service = ReconciliationService(session)
                    result = await service.sweep_missing_earnings(
                        limit=settings.reconcile_batch_size,
                    )

                logger.info(f'Sweep result: {result}')
                return result
        except Exception as e:
            logger.error(f'Earnings sweep failed: {e}', exc_info=True)
            raise

    async def _run_aggregate_rebuild(self):
        """Rebuild post aggregates from engagements, views and consumption samples."""
        logger.info('Running aggregate rebuild...')
        try:
            async with self.async_session() as session:
                async with session.begin():
                    service = ReconciliationService(session)
                    result = await service.rebuild_aggregates()

                logger.info(f'Rebuild result: {result}')
                return result
        except Exception as e:
            logger.error(f'Aggregate rebuild failed: {e}', exc_info=True)
            raise

    async def run_once(self, job_type: str = 'earnings'):
        """Run a single job immediately (for testing)."""
        if job_type == 'earnings':
            return await self._run_earnings_sweep()
        elif job_type == 'aggregates':
            return await self._run_aggregate_rebuild()
        else:
            raise ValueError(f'Unknown job type: {job_type}')


async def main():
    """Entry point for the worker."""
    worker = ReconciliationWorker()
    await worker.start()


if __name__ == '__main__':
    asyncio.run(main())
