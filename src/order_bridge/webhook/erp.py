"""ERP webhook handler — receives change notifications and reconciles them."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.engine import get_session
from order_bridge.dependencies import get_channel, get_gateway, get_suppression_cache
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.telegram import TelegramChannel
from order_bridge.services.ttl_cache import TTLCache
from order_bridge.services.webhook_reconciler import WebhookReconciler
from order_bridge.webhook.telegram import secret_matches

logger = logging.getLogger(__name__)

router = APIRouter(tags=["erp"])


# ──────────────────────────────────────────────────────────────
# POST /webhooks/erp?token=<secret> — ERP entity events
# ──────────────────────────────────────────────────────────────
@router.post("/webhooks/erp")
async def receive_events(
    request: Request,
    token: str | None = Query(None),
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
    channel: TelegramChannel = Depends(get_channel),
    cache: TTLCache = Depends(get_suppression_cache),
) -> dict:
    """Process one ERP webhook delivery.

    Expected payload (simplified)::

        {
          "events": [{
            "meta": {"type": "demand", "href": ".../entity/demand/<id>"},
            "action": "CREATE",
            "updatedFields": []
          }]
        }

    Per-event failures are logged and counted; the delivery itself is
    acknowledged so the ERP does not retry a partially handled batch.
    """
    if not secret_matches(settings.erp_webhook_secret, token):
        logger.warning("ERP webhook call with a bad token")
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not JSON") from None

    reconciler = WebhookReconciler(db_session, gateway, channel, cache)
    result = await reconciler.process_batch(payload)
    await db_session.commit()
    return {"status": "ok", **asdict(result)}
