"""Storefront HTTP API."""
