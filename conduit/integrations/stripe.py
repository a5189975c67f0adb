"""
Stripe Connect integration kind.

Connects an existing Connect account and processes Stripe webhooks:
- ``stripe-signature`` verification (``t=<ts>,v1=<hmac>`` over ``"{t}.{body}"``)
- account.updated -> charges/payouts flags, suspension on disabled accounts
- account.application.deauthorized -> Suspended
- payment_intent.* -> last payment intent bookkeeping
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Callable, Literal, Optional
import hmac
import time

from pydantic import BaseModel, Field

from conduit.integrations.lifecycle import ConnectPlan
from conduit.integrations.state import IntegrationStatus
from conduit.integrations.webhooks import WebhookPayload, WebhookResult, sign_payload

if TYPE_CHECKING:
    from conduit.integrations.lifecycle import IntegrationController


class StripeConnectConfig(BaseModel):
    account_id: str = Field(min_length=1)
    account_type: Literal["standard", "express", "custom"] = "express"
    platform_fee_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    charges_enabled: bool = False
    payouts_enabled: bool = False
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class StripeEventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    id: str
    type: str
    data: StripeEventData = Field(default_factory=StripeEventData)


class StripeRequirements(BaseModel):
    disabled_reason: Optional[str] = None


class StripeAccount(BaseModel):
    charges_enabled: bool = False
    payouts_enabled: bool = False
    requirements: Optional[StripeRequirements] = None


class StripePaymentIntent(BaseModel):
    id: Optional[str] = None


def parse_signature_header(header: str) -> tuple[int | None, list[str]]:
    """Split a stripe-signature header into (timestamp, [v1 signatures])."""
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t" and value.isdigit():
            timestamp = int(value)
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


class StripeIntegration:
    """Stripe Connect capability for an IntegrationController."""

    type = "stripe"
    credential_names = ("api_key", "webhook_secret", "account_id")

    def __init__(self, tolerance_seconds: int = 300, now: Callable[[], float] = time.time):
        self.tolerance_seconds = tolerance_seconds
        self._now = now

    def prepare_connect(self, config: StripeConnectConfig | dict[str, Any]) -> ConnectPlan:
        cfg = config if isinstance(config, StripeConnectConfig) else StripeConnectConfig.model_validate(config)
        secrets = {
            name: value
            for name, value in (("api_key", cfg.api_key), ("webhook_secret", cfg.webhook_secret))
            if value
        }
        secrets["account_id"] = cfg.account_id
        return ConnectPlan(
            attributes={
                "account_id": cfg.account_id,
                "account_type": cfg.account_type,
                "platform_fee_percent": cfg.platform_fee_percent,
                "charges_enabled": cfg.charges_enabled,
                "payouts_enabled": cfg.payouts_enabled,
            },
            secrets=secrets,
        )

    def verify_signature(self, body: str, header: str, secret: str) -> bool:
        timestamp, signatures = parse_signature_header(header)
        if timestamp is None or not signatures:
            return False
        if self.tolerance_seconds and abs(self._now() - timestamp) > self.tolerance_seconds:
            return False
        expected = sign_payload(f"{timestamp}.{body}", secret)
        return any(hmac.compare_digest(expected, sig) for sig in signatures)

    async def handle_webhook(self, integration: "IntegrationController", payload: WebhookPayload) -> WebhookResult:
        secret = await integration.get_credential("webhook_secret")
        if not secret:
            return WebhookResult.failed("Webhook secret not configured")

        signature = payload.header("stripe-signature")
        if not signature:
            return WebhookResult.failed("Missing Stripe signature")

        body = payload.text
        if not self.verify_signature(body, signature, secret):
            return WebhookResult.failed("Invalid signature")

        event = StripeEvent.model_validate_json(body)
        obj = event.data.object

        # Event objects are validated before any state changes
        if event.type == "account.updated":
            self._on_account_updated(integration, StripeAccount.model_validate(obj))
        elif event.type == "account.application.deauthorized":
            integration.set_status(IntegrationStatus.SUSPENDED, "Stripe application deauthorized")
        elif event.type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            intent = StripePaymentIntent.model_validate(obj)
            integration.update_state(
                last_payment_intent_id=intent.id,
                last_payment_status="succeeded" if event.type.endswith("succeeded") else "failed",
            )
        else:
            return WebhookResult.ok(event.type, {"received": True, "handled": False})

        return WebhookResult.ok(event.type, {"received": True, "handled": True})

    def _on_account_updated(self, integration: "IntegrationController", account: StripeAccount) -> None:
        integration.update_state(
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
        )
        disabled_reason = account.requirements.disabled_reason if account.requirements else None
        state = integration.get_state()
        if disabled_reason:
            integration.set_status(IntegrationStatus.SUSPENDED, f"Account disabled: {disabled_reason}")
        elif state is not None and state.status != IntegrationStatus.ACTIVE and account.charges_enabled:
            integration.set_status(IntegrationStatus.ACTIVE)
