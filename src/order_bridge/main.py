"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from order_bridge.api.router import router as api_router
from order_bridge.config import settings
from order_bridge.database.engine import dispose_db, init_db
from order_bridge.dependencies import get_channel, get_gateway
from order_bridge.webhook.erp import router as erp_router
from order_bridge.webhook.telegram import router as telegram_router
from order_bridge.workers.base import PeriodicWorker
from order_bridge.workers.reminders import ReminderWorker
from order_bridge.workers.reports import ReportWorker

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")

    if not settings.erp_webhook_secret:
        logger.warning("ERP_WEBHOOK_SECRET not set — ERP webhook accepts unauthenticated calls")

    channel = get_channel()
    if settings.telegram_webhook_url:
        if await channel.set_webhook(settings.telegram_webhook_url, settings.telegram_webhook_secret or None):
            logger.info("Telegram webhook registered at %s", settings.telegram_webhook_url)

    workers: list[PeriodicWorker] = []
    if settings.workers_enabled:
        gateway = get_gateway()
        workers = [ReminderWorker(gateway, channel), ReportWorker(gateway, channel)]
        for worker in workers:
            worker.start()

    yield

    logger.info("Shutting down %s …", settings.app_name)
    for worker in workers:
        await worker.stop()
    await dispose_db()


app = FastAPI(
    title=settings.app_name,
    description="Telegram storefront bot and order bridge to the MoySklad ERP",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(telegram_router)
app.include_router(erp_router)
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}
