"""Stripe-facing components of the marketplace app."""

from .payment_gateway import StripeGateway
from .webhook_reconciler import EventKind, WebhookConcern, WebhookReconciler

__all__ = [
    "StripeGateway",
    "EventKind",
    "WebhookConcern",
    "WebhookReconciler",
]
