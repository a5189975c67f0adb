"""
Conduit Phone Client — SMS across carriers with failover.

A primary carrier plus ordered fallbacks. Destination numbers are
normalized and validated before any carrier is contacted, so a bad
number surfaces as InvalidNumberError without spending a provider call.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol, Sequence, runtime_checkable
import asyncio
import logging

from conduit.integrations.errors import FailoverCondition, InvalidNumberError
from conduit.resilience.failover import FailoverPool
from conduit.resilience.retry import RetryOptions, Sleep
from conduit.telephony.numbers import is_valid_e164, normalize_phone_number

logger = logging.getLogger(__name__)


@dataclass
class SmsRecord:
    """Carrier receipt for an outbound message."""
    id: str
    provider: str
    to: str
    from_number: str | None = None
    body: str = ""
    status: str = "queued"
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class SmsAdapter(Protocol):
    provider: str

    async def send_sms(self, to: str, body: str, from_number: str | None = None) -> SmsRecord: ...


class PhoneClient:
    """
    SMS client with retry per carrier and failover between carriers.

    Usage:
        client = PhoneClient(telnyx, fallback=[twilio], failover_on=["service_unavailable"])
        record = await client.send_sms("(415) 555-1234", "Your code is 1234")
    """

    def __init__(
        self,
        primary: SmsAdapter,
        fallback: Sequence[SmsAdapter] = (),
        failover_on: Iterable[FailoverCondition | str] = (
            FailoverCondition.SERVICE_UNAVAILABLE,
            FailoverCondition.RATE_LIMIT,
            FailoverCondition.TIMEOUT,
        ),
        max_retries: int = 0,
        retry: Optional[RetryOptions] = None,
        default_country_code: str = "1",
        sleep: Sleep = asyncio.sleep,
    ):
        self.primary = primary
        self.default_country_code = default_country_code
        options = retry or RetryOptions(max_attempts=max_retries + 1)
        self._pool: FailoverPool[SmsAdapter] = FailoverPool(
            [primary, *fallback], failover_on=failover_on, retry=options, sleep=sleep,
        )

    @property
    def providers(self) -> list[str]:
        return self._pool.providers

    def normalize(self, number: str) -> str:
        """Normalize and validate a number, raising InvalidNumberError."""
        normalized = normalize_phone_number(number, self.default_country_code)
        if not is_valid_e164(normalized):
            raise InvalidNumberError(self.primary.provider, number)
        return normalized

    async def send_sms(self, to: str, body: str, from_number: str | None = None) -> SmsRecord:
        destination = self.normalize(to)
        sender = self.normalize(from_number) if from_number else None

        record = await self._pool.run(lambda adapter: adapter.send_sms(destination, body, sender))
        if record.provider != self.primary.provider:
            logger.info("SMS to %s delivered via fallback carrier %s", destination, record.provider)
        return record
