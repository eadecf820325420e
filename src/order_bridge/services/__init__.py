"""Outbound integrations and orchestration services."""
