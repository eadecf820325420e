"""Telegram Bot API channel — outbound messages, documents and callbacks."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from order_bridge.config import settings

logger = logging.getLogger(__name__)

InlineKeyboard = list[list[dict[str, Any]]]
ReplyKeyboard = list[list[dict[str, Any]]]


def callback_button(text: str, data: str) -> dict[str, Any]:
    return {"text": text, "callback_data": data}


def url_button(text: str, url: str) -> dict[str, Any]:
    return {"text": text, "url": url}


def webapp_button(text: str, url: str) -> dict[str, Any]:
    return {"text": text, "web_app": {"url": url}}


class TelegramChannel:
    """Sends messages through the Bot API.

    Every method is fire-and-forget: failures are logged and reported as
    ``False`` so one undeliverable message never aborts the caller's loop.
    Without a bot token the payload is only logged.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = settings.bot_token if token is None else token
        self._base_url = (base_url or settings.telegram_api_base_url).rstrip("/")
        self._transport = transport

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> bool:
        if not self._token:
            logger.warning("BOT_TOKEN not set — %s logged only: %s", method, payload)
            return False

        url = f"{self._base_url}/bot{self._token}/{method}"
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                if files:
                    resp = await client.post(url, data=payload, files=files)
                else:
                    resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.exception("Telegram %s request error: %s", method, exc)
            return False

        if resp.status_code == 200:
            logger.debug("Telegram %s ok for chat %s", method, payload.get("chat_id"))
            return True
        logger.error("Telegram %s failed: %s %s", method, resp.status_code, resp.text[:300])
        return False

    async def send_text(
        self,
        chat_id: str | int,
        text: str,
        *,
        parse_mode: str | None = None,
        inline_keyboard: InlineKeyboard | None = None,
        reply_keyboard: ReplyKeyboard | None = None,
        remove_keyboard: bool = False,
    ) -> bool:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if inline_keyboard:
            payload["reply_markup"] = {"inline_keyboard": inline_keyboard}
        elif reply_keyboard:
            payload["reply_markup"] = {"keyboard": reply_keyboard, "resize_keyboard": True}
        elif remove_keyboard:
            payload["reply_markup"] = {"remove_keyboard": True}
        return await self._call("sendMessage", payload)

    async def send_document(
        self,
        chat_id: str | int,
        content: bytes,
        filename: str,
        *,
        caption: str | None = None,
    ) -> bool:
        payload: dict[str, Any] = {"chat_id": str(chat_id)}
        if caption:
            payload["caption"] = caption
        files = {"document": (filename, content, "application/pdf")}
        return await self._call("sendDocument", payload, files=files)

    async def send_location(self, chat_id: str | int, lat: float, lng: float) -> bool:
        return await self._call(
            "sendLocation", {"chat_id": chat_id, "latitude": lat, "longitude": lng}
        )

    async def answer_callback(self, callback_id: str, text: str | None = None) -> bool:
        payload: dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)

    async def edit_inline_keyboard(
        self, chat_id: str | int, message_id: int, inline_keyboard: InlineKeyboard
    ) -> bool:
        return await self._call(
            "editMessageReplyMarkup",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "reply_markup": {"inline_keyboard": inline_keyboard},
            },
        )

    async def set_webhook(self, url: str, secret: str | None = None) -> bool:
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret:
            payload["secret_token"] = secret
        return await self._call("setWebhook", payload)
