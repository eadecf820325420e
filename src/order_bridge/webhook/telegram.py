"""Telegram webhook handler — receives bot updates and routes them."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from order_bridge.config import settings
from order_bridge.database.engine import get_session
from order_bridge.dependencies import get_channel, get_gateway, get_session_manager
from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.message_router import MessageRouter
from order_bridge.services.session_manager import SessionManager
from order_bridge.services.telegram import TelegramChannel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])


def secret_matches(expected: str, received: str | None) -> bool:
    """Constant-time check; an unset secret accepts every request."""
    if not expected:
        return True
    return received is not None and hmac.compare_digest(expected.encode(), received.encode())


# ──────────────────────────────────────────────────────────────
# POST /telegram/webhook — Bot API updates
# ──────────────────────────────────────────────────────────────
@router.post("/telegram/webhook")
async def receive_update(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(None),
    db_session: AsyncSession = Depends(get_session),
    gateway: ErpGateway = Depends(get_gateway),
    channel: TelegramChannel = Depends(get_channel),
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict:
    """Process one update pushed by the Bot API.

    Expected payload (simplified)::

        {
          "update_id": 1,
          "message": {
            "from": {"id": 42, "first_name": "Ali"},
            "chat": {"id": 42},
            "text": "/start"
          }
        }

    Errors inside the bot flow are answered in the chat, so Telegram
    always gets a 200 and never redelivers.
    """
    if not secret_matches(settings.telegram_webhook_secret, x_telegram_bot_api_secret_token):
        logger.warning("Telegram webhook call with a bad secret token")
        raise HTTPException(status_code=403, detail="Forbidden")

    update = await request.json()
    message_router = MessageRouter(session_manager, gateway, channel)
    await message_router.route(update, db_session)
    await db_session.commit()
    return {"ok": True}
