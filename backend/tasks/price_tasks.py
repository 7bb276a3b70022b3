"""Price refresh Celery tasks."""

import asyncio
import logging

from celery_config import celery_app
from services.price_service import price_oracle
from utils.errors import PriceUnavailable

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.refresh_price", queue="rounds")
def refresh_price():
    """
    Scheduled: Every price_refresh_seconds

    Fetches the reference price into the oracle's in-process history so
    late transitions can be priced near their due time.
    """

    async def _refresh():
        price = await price_oracle.fetch_price()
        return {"price": str(price), "samples": len(price_oracle.history())}

    try:
        return asyncio.run(_refresh())
    except PriceUnavailable as e:
        logger.warning(f"Price refresh failed: {e}")
        return {"price": None, "error": str(e)}
