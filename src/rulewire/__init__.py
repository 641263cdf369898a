"""Rulewire: conditional automations with webhook actions and cron scheduling."""

__version__ = "1.0.0"
