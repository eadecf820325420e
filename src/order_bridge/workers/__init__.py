"""Periodic background workers."""
