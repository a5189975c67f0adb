"""
GitHub App integration kind.

Tracks one repository through an App installation. Webhooks are
verified with ``x-hub-signature-256`` and dispatched on ``x-github-event``.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from conduit.integrations.lifecycle import ConnectPlan
from conduit.integrations.state import IntegrationStatus
from conduit.integrations.webhooks import WebhookPayload, WebhookResult, verify_webhook_signature

if TYPE_CHECKING:
    from conduit.integrations.lifecycle import IntegrationController


class GitHubConnectConfig(BaseModel):
    installation_id: str = Field(min_length=1)
    repository: str = Field(pattern=r"^[\w.-]+/[\w.-]+$")
    branch: str = "main"
    base_path: str = ""
    webhook_secret: Optional[str] = None
    private_key: Optional[str] = None


class GitHubInstallationEvent(BaseModel):
    action: str
    installation: dict[str, Any] = Field(default_factory=dict)


class GitHubPushEvent(BaseModel):
    ref: str
    after: str


_INSTALLATION_STATUS = {
    "deleted": (IntegrationStatus.SUSPENDED, "GitHub App installation deleted"),
    "suspend": (IntegrationStatus.SUSPENDED, "GitHub App installation suspended"),
    "unsuspend": (IntegrationStatus.ACTIVE, None),
}


class GitHubIntegration:
    """GitHub App capability for an IntegrationController."""

    type = "github"
    credential_names = ("webhook_secret", "private_key")

    def prepare_connect(self, config: GitHubConnectConfig | dict[str, Any]) -> ConnectPlan:
        cfg = config if isinstance(config, GitHubConnectConfig) else GitHubConnectConfig.model_validate(config)
        secrets = {}
        if cfg.webhook_secret:
            secrets["webhook_secret"] = cfg.webhook_secret
        if cfg.private_key:
            secrets["private_key"] = cfg.private_key
        return ConnectPlan(
            attributes={
                "installation_id": cfg.installation_id,
                "repository": cfg.repository,
                "branch": cfg.branch,
                "base_path": cfg.base_path,
            },
            secrets=secrets,
        )

    async def handle_webhook(self, integration: "IntegrationController", payload: WebhookPayload) -> WebhookResult:
        secret = await integration.get_credential("webhook_secret")
        if secret:
            signature = payload.header("x-hub-signature-256")
            if not signature:
                return WebhookResult.failed("Missing GitHub signature")
            if not verify_webhook_signature(payload.raw, signature, secret):
                return WebhookResult.failed("Invalid signature")

        event_type = payload.header("x-github-event")
        if not event_type:
            return WebhookResult.failed("Missing GitHub event header")

        if event_type == "ping":
            return WebhookResult.ok(event_type, {"pong": True})

        if event_type == "installation":
            event = GitHubInstallationEvent.model_validate_json(payload.text)
            change = _INSTALLATION_STATUS.get(event.action)
            if change is not None:
                integration.set_status(*change)
            return WebhookResult.ok(f"installation.{event.action}")

        if event_type == "push":
            event = GitHubPushEvent.model_validate_json(payload.text)
            state = integration.get_state()
            branch = state.get("branch", "main") if state else "main"
            if event.ref == f"refs/heads/{branch}":
                integration.update_state(last_sync_sha=event.after)
            return WebhookResult.ok(event_type, {"ref": event.ref, "sha": event.after})

        return WebhookResult.ok(event_type, {"handled": False})
