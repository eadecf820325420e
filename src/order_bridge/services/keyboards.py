"""Bot keyboards shared by the conversation agents and the order flow."""

from __future__ import annotations

from order_bridge.config import settings
from order_bridge.domain.address import short_address
from order_bridge.models import User
from order_bridge.models.preferences import NOTIFICATION_TYPES
from order_bridge.services.i18n import matches_any_language, translate
from order_bridge.services.telegram import (
    InlineKeyboard,
    ReplyKeyboard,
    callback_button,
    webapp_button,
)

MENU_KEYS = ("menu_orders", "menu_balance", "menu_language", "menu_settings", "menu_help", "open_shop_button")


def is_menu_text(text: str) -> bool:
    """True for the label of any main-menu button, in any language."""
    cleaned = text.strip()
    return any(matches_any_language(cleaned, key) for key in MENU_KEYS)


def main_menu(user: User) -> ReplyKeyboard:
    lang = user.language
    rows: ReplyKeyboard = []
    if settings.webapp_url:
        url = f"{settings.webapp_url}?tgId={user.telegram_id}"
        rows.append([webapp_button(translate(lang, "open_shop_button"), url)])
    rows.append([{"text": translate(lang, "menu_orders")}, {"text": translate(lang, "menu_balance")}])
    last_row = [{"text": translate(lang, "menu_language")}, {"text": translate(lang, "menu_help")}]
    if user.telegram_id in settings.admin_ids:
        last_row.append({"text": translate(lang, "menu_settings")})
    rows.append(last_row)
    return rows


def contact_request(lang: str) -> ReplyKeyboard:
    return [[{"text": translate(lang, "share_contact_button"), "request_contact": True}]]


def language_picker() -> InlineKeyboard:
    return [
        [
            callback_button("🇺🇿 O'zbekcha", "lang:uz"),
            callback_button("🇺🇿 Ўзбекча", "lang:uzc"),
            callback_button("🇷🇺 Русский", "lang:ru"),
        ]
    ]


def delivery_choice(lang: str) -> InlineKeyboard:
    return [
        [
            callback_button(translate(lang, "pickup"), "delivery:pickup"),
            callback_button(translate(lang, "delivery"), "delivery:delivery"),
        ]
    ]


def address_request(lang: str, saved_address: str | None) -> ReplyKeyboard:
    rows: ReplyKeyboard = [
        [{"text": translate(lang, "send_location_button"), "request_location": True}]
    ]
    if saved_address:
        rows.append([{"text": saved_address_label(lang, saved_address)}])
    return rows


def saved_address_label(lang: str, saved_address: str) -> str:
    return translate(lang, "use_saved", address=short_address(saved_address))


def confirm_order(lang: str) -> InlineKeyboard:
    return [
        [callback_button(translate(lang, "confirm_button"), "order:confirm")],
        [callback_button(translate(lang, "cancel_button"), "order:cancel")],
    ]


def admin_panel(lang: str, staged: dict[str, bool]) -> InlineKeyboard:
    rows: InlineKeyboard = []
    for kind in NOTIFICATION_TYPES:
        mark = "✅" if staged.get(kind) else "⬜"
        rows.append([callback_button(f"{mark} {translate(lang, 'pref_' + kind)}", f"admin:toggle:{kind}")])
    rows.append(
        [
            callback_button(translate(lang, "admin_save"), "admin:save"),
            callback_button(translate(lang, "admin_cancel"), "admin:cancel"),
        ]
    )
    return rows
