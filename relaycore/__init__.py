"""Nostr relay building blocks: subscriptions, client messages, metrics and HTTP endpoints."""

__version__ = "0.1.0"

__all__ = ["delivery", "metrics", "pages", "subscription", "utils", "web"]