"""Conversational agents driving the bot."""
