"""Process-wide shared instances, handed to the routers through ``Depends``."""

from order_bridge.services.erp_client import ErpGateway
from order_bridge.services.session_manager import SessionManager
from order_bridge.services.telegram import TelegramChannel
from order_bridge.services.ttl_cache import TTLCache

# ── Shared instances (created once, reused across requests) ──
_erp_cache = TTLCache()
_gateway = ErpGateway(cache=_erp_cache)
_channel = TelegramChannel()
_session_manager = SessionManager()
_suppression_cache = TTLCache()
_catalog_cache = TTLCache()


def get_gateway() -> ErpGateway:
    return _gateway


def get_channel() -> TelegramChannel:
    return _channel


def get_session_manager() -> SessionManager:
    return _session_manager


def get_suppression_cache() -> TTLCache:
    """Markers of recent shipment creates, shared by every webhook delivery."""
    return _suppression_cache


def get_catalog_cache() -> TTLCache:
    return _catalog_cache
