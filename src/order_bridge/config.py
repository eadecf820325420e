"""Order Bridge — configuration loaded from environment."""

from pydantic_settings import BaseSettings


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./order_bridge.db"

    # ── Telegram Bot API ──────────────────────────────────
    bot_token: str = ""
    telegram_webhook_secret: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    admin_telegram_ids: str = ""
    telegram_webhook_url: str = ""
    webapp_url: str = ""

    # ── ERP (MoySklad JSON API) ───────────────────────────
    erp_base_url: str = "https://api.moysklad.ru/api/remap/1.2"
    erp_token: str = ""
    erp_auth_scheme: str = "Bearer"
    erp_webhook_secret: str = ""
    erp_organization_id: str = ""
    erp_store_id: str = ""
    erp_timeout_seconds: float = 20.0

    # Counterparty custom attributes (attribute ids)
    erp_counterparty_telegram_attr: str = ""
    erp_counterparty_username_attr: str = ""
    erp_counterparty_location_attr: str = ""
    erp_counterparty_address_attr: str = ""
    erp_counterparty_address_details_attr: str = ""

    # Customer-order custom attributes (attribute ids)
    erp_order_delivery_method_attr: str = ""
    erp_order_note_attr: str = ""
    erp_order_address_attr: str = ""
    erp_order_address_details_attr: str = ""
    erp_order_location_attr: str = ""
    erp_driver_model_attrs: str = ""
    erp_driver_number_attrs: str = ""

    # Delivery-method custom entity and its option ids
    erp_delivery_method_entity_id: str = ""
    erp_pickup_option_id: str = ""
    erp_delivery_option_id: str = ""

    # ── Order flow ────────────────────────────────────────
    reminder_days_after_order: str = "1,2,3,6"
    shipment_suppression_seconds: int = 60
    reminder_retention_days: int = 30

    # ── Schedulers ────────────────────────────────────────
    workers_enabled: bool = True
    worker_interval_seconds: int = 60
    debt_reminder_weekday: int = 0  # Monday
    debt_reminder_hour: int = 10
    report_hour: int = 20
    report_timezone_offset: int = 5

    # ── Receipts ──────────────────────────────────────────
    shop_name: str = "Order Bridge"
    receipt_font_path: str = ""
    receipt_bold_font_path: str = ""

    # ── SMTP (digest copies) ──────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "reports@example.com"
    report_email_to: str = ""

    # ── App ───────────────────────────────────────────────
    app_name: str = "Order Bridge"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Derived values ────────────────────────────────────

    @property
    def admin_ids(self) -> list[str]:
        return _split_csv(self.admin_telegram_ids)

    @property
    def reminder_days(self) -> list[int]:
        days = []
        for part in _split_csv(self.reminder_days_after_order):
            if part.isdigit() and int(part) > 0:
                days.append(int(part))
        return days

    @property
    def driver_model_attrs(self) -> list[str]:
        return _split_csv(self.erp_driver_model_attrs)

    @property
    def driver_number_attrs(self) -> list[str]:
        return _split_csv(self.erp_driver_number_attrs)

    @property
    def delivery_option_ids(self) -> dict[str, str]:
        """ERP custom-entity option id → canonical delivery method."""
        mapping = {}
        if self.erp_pickup_option_id:
            mapping[self.erp_pickup_option_id] = "pickup"
        if self.erp_delivery_option_id:
            mapping[self.erp_delivery_option_id] = "delivery"
        return mapping


# Singleton settings instance
settings = Settings()
