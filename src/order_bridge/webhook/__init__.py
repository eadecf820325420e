"""Inbound webhooks (Telegram updates, ERP change events)."""
