"""Test the integration lifecycle controller."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from conduit.integrations.contracts import EventType, InMemoryCredentialStore, InMemoryEventEmitter
from conduit.integrations.errors import IntegrationError, InvalidNumberError, ProviderUnavailableError
from conduit.integrations.lifecycle import ConnectPlan, IntegrationConfig, IntegrationController, IntegrationKind
from conduit.integrations.state import Connected, IntegrationStatus
from conduit.integrations.stripe import StripeIntegration
from conduit.integrations.webhooks import WebhookPayload, WebhookResult
from conduit.resilience.retry import RetryOptions


class EchoIntegration:
    """Minimal integration kind: JSON webhooks carrying a ``type`` field."""

    type = "echo"
    credential_names = ("api_key",)

    def prepare_connect(self, config):
        secrets = {"api_key": config["api_key"]} if "api_key" in config else {}
        return ConnectPlan(attributes={"region": config.get("region", "us")}, secrets=secrets)

    async def handle_webhook(self, integration, payload):
        data = payload.json()
        if data["type"] == "explode":
            raise RuntimeError("handler crashed")
        integration.update_state(last_event=data["type"])
        return WebhookResult.ok(data["type"])


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


async def no_sleep(seconds):
    return None


def make_controller(kind=None, purge=False, instance_id="d"):
    store = InMemoryCredentialStore()
    events = InMemoryEventEmitter()
    clock = Clock()
    controller = IntegrationController(
        kind or EchoIntegration(),
        IntegrationConfig(instance_id=instance_id, purge_credentials_on_disconnect=purge),
        store,
        events,
        clock=clock,
    )
    return controller, store, events, clock


def test_kind_protocol():
    assert isinstance(EchoIntegration(), IntegrationKind)
    assert isinstance(StripeIntegration(), IntegrationKind)


def test_initial_state_absent():
    controller, *_ = make_controller()
    assert controller.get_state() is None
    assert not controller.is_connected


@pytest.mark.asyncio
async def test_connect_sets_active_state():
    controller, _, _, clock = make_controller()
    state = await controller.connect({"region": "eu"})
    assert state.status == IntegrationStatus.ACTIVE
    assert state.type == "echo"
    assert state.connected_at == clock.now
    assert state.last_activity_at == clock.now
    assert state.get("region") == "eu"
    assert controller.get_state() is state


@pytest.mark.asyncio
async def test_connect_stores_secrets_and_emits():
    controller, store, events, _ = make_controller()
    await controller.connect({"api_key": "sk_test"})
    assert await store.get("d:echo:api_key") == "sk_test"
    connected = events.of_type(EventType.CONNECTED)
    assert len(connected) == 1
    assert connected[0].payload == {"integrationType": "echo"}


@pytest.mark.asyncio
async def test_connect_twice_overwrites():
    controller, _, _, clock = make_controller()
    await controller.connect({"region": "eu"})
    controller.update_state(note="kept?")
    clock.advance(10)
    state = await controller.connect({"region": "ap"})
    assert state.get("region") == "ap"
    assert state.get("note") is None
    assert state.connected_at == clock.now


@pytest.mark.asyncio
async def test_reconnect_drops_secrets_missing_from_new_config():
    controller, store, _, _ = make_controller()
    await controller.connect({"api_key": "sk_old"})
    await controller.connect({"region": "eu"})
    assert not await store.has("d:echo:api_key")
    assert await controller.get_credential("api_key") is None


@pytest.mark.asyncio
async def test_reconnect_clears_stale_stripe_webhook_secret():
    store = InMemoryCredentialStore()
    first = IntegrationController(StripeIntegration(), IntegrationConfig("d"), store, InMemoryEventEmitter())
    await first.connect({"account_id": "acct_1", "webhook_secret": "whsec_old"})

    restarted = IntegrationController(StripeIntegration(), IntegrationConfig("d"), store, InMemoryEventEmitter())
    await restarted.connect({"account_id": "acct_1"})
    assert await restarted.get_credential("webhook_secret") is None
    assert await restarted.get_credential("account_id") == "acct_1"


@pytest.mark.asyncio
async def test_purge_after_restart_removes_stripe_account_id():
    store = InMemoryCredentialStore()
    config = IntegrationConfig("d", purge_credentials_on_disconnect=True)
    first = IntegrationController(StripeIntegration(), config, store, InMemoryEventEmitter())
    await first.connect({"account_id": "acct_1", "api_key": "sk", "webhook_secret": "whsec"})

    restarted = IntegrationController(StripeIntegration(), config, store, InMemoryEventEmitter())
    # state restored without going through connect()
    restarted._apply(Connected(integration_type="stripe", at=datetime.now(timezone.utc)))
    assert await restarted.disconnect() is True
    assert store.keys() == []


@pytest.mark.asyncio
async def test_connect_validation_error_propagates():
    controller, *_ = make_controller(kind=StripeIntegration())
    with pytest.raises(ValidationError):
        await controller.connect({"account_type": "express"})
    assert controller.get_state() is None


@pytest.mark.asyncio
async def test_disconnect_when_not_connected():
    controller, _, events, _ = make_controller()
    assert await controller.disconnect() is False
    assert events.history == []


@pytest.mark.asyncio
async def test_disconnect_clears_state_and_emits():
    controller, store, events, _ = make_controller()
    await controller.connect({"api_key": "sk_test"})
    assert await controller.disconnect() is True
    assert controller.get_state() is None
    assert events.of_type(EventType.DISCONNECTED)[0].payload == {"integrationType": "echo"}
    # default policy keeps credentials
    assert await store.has("d:echo:api_key")


@pytest.mark.asyncio
async def test_disconnect_purges_credentials_when_configured():
    controller, store, _, _ = make_controller(purge=True)
    await controller.connect({"api_key": "sk_test"})
    await controller.store_credential("refresh_token", "rt")
    assert await controller.disconnect() is True
    assert store.keys() == []


@pytest.mark.asyncio
async def test_health_check_not_configured():
    controller, *_ = make_controller()
    result = await controller.health_check()
    assert not result.healthy
    assert result.status == IntegrationStatus.NOT_CONFIGURED
    assert result.error == "Integration not configured"


@pytest.mark.asyncio
async def test_health_check_tracks_status():
    controller, *_ = make_controller()
    await controller.connect({})
    result = await controller.health_check()
    assert result.healthy
    assert result.status == IntegrationStatus.ACTIVE
    assert result.latency_ms >= 0

    for status in (IntegrationStatus.ERROR, IntegrationStatus.SUSPENDED):
        controller.set_status(status, "degraded")
        result = await controller.health_check()
        assert not result.healthy
        assert result.status == status
        assert result.error == "degraded"


@pytest.mark.asyncio
async def test_refresh_not_configured():
    controller, *_ = make_controller()
    with pytest.raises(IntegrationError) as exc_info:
        await controller.refresh()
    assert exc_info.value.code == "NOT_CONFIGURED"
    assert exc_info.value.integration_type == "echo"


@pytest.mark.asyncio
async def test_refresh_advances_last_activity():
    controller, _, _, clock = make_controller()
    await controller.connect({})
    first = controller.get_state().last_activity_at
    clock.advance(5)
    refreshed = await controller.refresh()
    assert refreshed.last_activity_at > first
    # a clock that steps backwards never moves activity back
    clock.advance(-60)
    again = await controller.refresh()
    assert again.last_activity_at == refreshed.last_activity_at


def test_update_state_noop_when_absent():
    controller, *_ = make_controller()
    controller.update_state(region="eu")
    assert controller.get_state() is None


def test_set_status_noop_when_absent():
    controller, *_ = make_controller()
    controller.set_status(IntegrationStatus.ERROR, "x")
    assert controller.get_state() is None


@pytest.mark.asyncio
async def test_set_status_updates_error_and_activity():
    controller, _, _, clock = make_controller()
    await controller.connect({})
    clock.advance(3)
    controller.set_status("Error", "token expired")
    state = controller.get_state()
    assert state.status == IntegrationStatus.ERROR
    assert state.error == "token expired"
    assert state.last_activity_at == clock.now


@pytest.mark.asyncio
async def test_set_status_rejects_not_configured():
    controller, *_ = make_controller()
    await controller.connect({})
    with pytest.raises(ValueError):
        controller.set_status(IntegrationStatus.NOT_CONFIGURED)


@pytest.mark.asyncio
async def test_credentials_namespaced():
    controller, store, _, _ = make_controller(kind=StripeIntegration(), instance_id="d")
    await controller.store_credential("k", "secret", {"rotated": "no"})
    assert await store.get("d:stripe:k") == "secret"
    assert store.metadata("d:stripe:k") == {"rotated": "no"}
    assert await controller.get_credential("k") == "secret"


@pytest.mark.asyncio
async def test_credentials_isolated_between_instances():
    store = InMemoryCredentialStore()
    events = InMemoryEventEmitter()
    a = IntegrationController(EchoIntegration(), IntegrationConfig("a"), store, events)
    b = IntegrationController(EchoIntegration(), IntegrationConfig("b"), store, events)
    await a.store_credential("api_key", "one")
    await b.store_credential("api_key", "two")
    assert await a.get_credential("api_key") == "one"
    assert await b.get_credential("api_key") == "two"


@pytest.mark.asyncio
async def test_missing_credential_returns_none():
    controller, *_ = make_controller()
    assert await controller.get_credential("nope") is None


@pytest.mark.asyncio
async def test_handle_webhook_success():
    controller, _, events, _ = make_controller()
    await controller.connect({})
    result = await controller.handle_webhook(WebhookPayload(body='{"type": "ping"}', headers={}))
    assert result.success
    assert result.event_type == "ping"
    assert controller.get_state().get("last_event") == "ping"
    assert events.of_type(EventType.WEBHOOK_RECEIVED)[0].payload["eventType"] == "ping"


@pytest.mark.asyncio
async def test_handle_webhook_invalid_payload():
    controller, *_ = make_controller()
    result = await controller.handle_webhook(WebhookPayload(body="not json", headers={}))
    assert not result.success
    assert result.error == "Invalid payload"


@pytest.mark.asyncio
async def test_handle_webhook_never_raises():
    controller, _, events, _ = make_controller()
    await controller.connect({})
    result = await controller.handle_webhook(WebhookPayload(body='{"type": "explode"}'))
    assert not result.success
    assert result.error == "handler crashed"
    assert events.of_type(EventType.ERROR)[0].payload["error"] == "handler crashed"

    missing_key = await controller.handle_webhook(WebhookPayload(body='{"other": 1}'))
    assert not missing_key.success


@pytest.mark.asyncio
async def test_call_requires_configuration():
    controller, *_ = make_controller()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1

    with pytest.raises(IntegrationError) as exc_info:
        await controller.call(op)
    assert exc_info.value.code == "NOT_CONFIGURED"
    assert calls == 0


@pytest.mark.asyncio
async def test_call_retries_and_records_activity():
    controller, _, _, clock = make_controller()
    await controller.connect({})
    attempts = 0

    async def op():
        nonlocal attempts
        attempts += 1
        clock.advance(1)
        if attempts < 2:
            raise ProviderUnavailableError("echo")
        return "done"

    assert await controller.call(op, RetryOptions(max_attempts=3, base_delay_ms=0), sleep=no_sleep) == "done"
    assert attempts == 2
    assert controller.get_state().last_activity_at == clock.now


@pytest.mark.asyncio
async def test_call_failure_emits_error_and_reraises():
    controller, _, events, _ = make_controller()
    await controller.connect({})
    error = InvalidNumberError("echo", "555")

    async def op():
        raise error

    with pytest.raises(InvalidNumberError) as exc_info:
        await controller.call(op, sleep=no_sleep)
    assert exc_info.value is error
    assert events.of_type(EventType.ERROR)[0].payload["integrationType"] == "echo"


def test_event_subscription():
    events = InMemoryEventEmitter()
    received = []
    unsubscribe = events.subscribe(received.append)

    def broken(event):
        raise RuntimeError("subscriber bug")

    events.subscribe(broken)
    controller = IntegrationController(EchoIntegration(), IntegrationConfig("d"), InMemoryCredentialStore(), events)
    controller.emit_error("first")
    unsubscribe()
    controller.emit_error("second")
    assert [e.payload["error"] for e in received] == ["first"]
    assert len(events.history) == 2
