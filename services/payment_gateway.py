"""Stripe client wrapper: checkout sessions, webhook verification, refunds, connect."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import stripe

from common.errors import BadRequestError, InternalError


SIGNATURE_ERROR = "Webhook Error: Unable to Verify Signature"


class StripeGateway:
    """Thin seam over the stripe SDK so services never import it directly."""

    def __init__(self, api_key: str, stripe_client=stripe) -> None:
        self._stripe = stripe_client
        self._stripe.api_key = api_key
        self.logger = logging.getLogger(__name__)

    # --- webhooks -------------------------------------------------------

    def verify_event(self, payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
        """Verify the raw body against its ``Stripe-Signature`` header.

        Returns the decoded event as a plain dict. Any verification or decode
        failure raises BadRequestError before the payload is trusted.
        """

        if not signature or not secret:
            self.logger.warning("webhook signature missing")
            raise BadRequestError(SIGNATURE_ERROR)
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError:
            self.logger.warning("webhook payload is not valid utf-8")
            raise BadRequestError(SIGNATURE_ERROR)
        try:
            self._stripe.WebhookSignature.verify_header(
                body, signature, secret, self._stripe.Webhook.DEFAULT_TOLERANCE
            )
        except self._stripe.SignatureVerificationError as exc:
            self.logger.warning("webhook signature verification failed: %s", exc)
            raise BadRequestError(SIGNATURE_ERROR)
        try:
            event = json.loads(body)
        except ValueError:
            raise BadRequestError("Webhook Error: Invalid Payload")
        if not isinstance(event, dict):
            raise BadRequestError("Webhook Error: Invalid Payload")
        return event

    # --- checkout -------------------------------------------------------

    def create_checkout_session(self, **params) -> Any:
        try:
            return self._stripe.checkout.Session.create(**params)
        except self._stripe.StripeError as exc:
            self.logger.error("checkout session failed: %s", exc)
            raise InternalError("Unable To Create Stripe Session")

    def create_refund(self, *, payment_intent: str, idempotency_key: Optional[str] = None) -> Any:
        # destination charge: refund on the platform, pull the transfer and
        # the application fee back from the connected account
        params = {
            "payment_intent": payment_intent,
            "reverse_transfer": True,
            "refund_application_fee": True,
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            return self._stripe.Refund.create(**params)
        except self._stripe.StripeError as exc:
            self.logger.error("refund failed for %s: %s", payment_intent, exc)
            raise InternalError("Unable To Refund Order")

    # --- connect --------------------------------------------------------

    def create_connected_account(self, *, email: Optional[str], address: Dict[str, str]) -> Any:
        try:
            return self._stripe.Account.create(
                type="express",
                email=email,
                country=address["country"],
                business_type="individual",
                individual={
                    "address": {
                        "line1": address["line1"],
                        "line2": address.get("line2") or None,
                        "city": address["city"],
                        "state": address["province"],
                        "postal_code": address["zip"],
                        "country": address["country"],
                    },
                    "email": email,
                    "first_name": address["first_name"],
                    "last_name": address["last_name"],
                },
            )
        except self._stripe.StripeError as exc:
            self.logger.error("connected account creation failed: %s", exc)
            raise InternalError("Unable To Create Store")

    def create_account_link(self, *, account_id: str, return_url: str) -> str:
        try:
            link = self._stripe.AccountLink.create(
                account=account_id,
                refresh_url=return_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except self._stripe.StripeError as exc:
            self.logger.error("account link failed for %s: %s", account_id, exc)
            raise InternalError("Unable To Create Onboarding Link")
        return link.url
