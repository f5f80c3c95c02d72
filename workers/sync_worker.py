"""
Scheduled sync worker: pulls every known campaign on an interval.
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from leadsync.core.config import settings
from leadsync.core.logging import configure_structlog, get_structlog_logger
from leadsync.db.session import dispose_engine
from leadsync.services.factory import build_sync_service, get_lead_store
from leadsync.services.lead_store import StoreUnavailableError
from leadsync.services.redis import close_redis_pool

configure_structlog()
logger = get_structlog_logger()


async def run_cycle() -> int:
    """
    Sync every campaign of every tenant once. Returns the number of new leads.
    Pages that are cooling down are simply picked up again next cycle.
    """
    try:
        campaigns_by_tenant = await get_lead_store().campaign_ids_by_tenant()
    except StoreUnavailableError as e:
        logger.error("sync_worker.store_unavailable", code=e.code, message=e.message)
        return 0

    service = build_sync_service()
    synced = 0
    for tenant_id, campaign_ids in campaigns_by_tenant.items():
        result = await service.sync_many(tenant_id, campaign_ids)
        synced += result.total_synced
        logger.info(
            "sync_worker.tenant_synced",
            tenant_id=tenant_id,
            campaigns=len(campaign_ids),
            synced=result.total_synced,
            fetched=result.total_fetched,
            deferred_pages=result.deferred_pages,
        )

    return synced


async def worker_main(once: bool = False, interval: Optional[int] = None) -> None:
    interval = interval or settings.sync_interval_seconds
    logger.info("sync_worker.starting", interval=interval, once=once)

    try:
        while True:
            synced = await run_cycle()
            logger.info("sync_worker.cycle_completed", synced=synced)
            if once:
                break
            await asyncio.sleep(interval)
    finally:
        await close_redis_pool()
        await dispose_engine()
        logger.info("sync_worker.stopped")


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="LeadSync scheduled sync worker")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--interval", type=int, default=None, help="Seconds between cycles")
    args = parser.parse_args(argv)

    try:
        asyncio.run(worker_main(once=args.once, interval=args.interval))
    except KeyboardInterrupt:
        logger.info("sync_worker.interrupted")


if __name__ == "__main__":
    main()
