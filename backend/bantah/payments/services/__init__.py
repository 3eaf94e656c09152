"""Payments services package."""

from .paystack import PaystackService, to_kobo

__all__ = ["PaystackService", "to_kobo"]
