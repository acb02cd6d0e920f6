"""Usage event stores and plan sources.

The event store is the only shared mutable resource in the pipeline.  It
supports exactly two operations: append one event, and count events in a
time window.  Events are never updated or deleted.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from listing_audit.schemas.usage import PlanTier, UsageEvent, UsageFeature

logger = logging.getLogger(__name__)


class UsageEventStore(ABC):
    """Append-only store of usage events."""

    @abstractmethod
    async def append(self, event: UsageEvent) -> None:
        """Record one event."""

    @abstractmethod
    async def count_since(
        self, account_id: str, feature: UsageFeature, since: datetime,
    ) -> int:
        """Count events for (account, feature) with ``created_at >= since``."""


class InMemoryUsageStore(UsageEventStore):
    """Process-local store; lost on exit.  Used by tests and one-shot runs."""

    def __init__(self) -> None:
        self._events: list[UsageEvent] = []
        self._lock = asyncio.Lock()

    async def append(self, event: UsageEvent) -> None:
        async with self._lock:
            self._events.append(event)

    async def count_since(
        self, account_id: str, feature: UsageFeature, since: datetime,
    ) -> int:
        async with self._lock:
            return sum(
                1
                for e in self._events
                if e.account_id == account_id and e.feature == feature and e.created_at >= since
            )

    @property
    def events(self) -> list[UsageEvent]:
        return list(self._events)


class JsonlUsageStore(UsageEventStore):
    """Append-only JSON-lines event log on disk (one event per line)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _append_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _read_events(self) -> list[UsageEvent]:
        if not self.path.exists():
            return []
        events = []
        for lineno, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                events.append(UsageEvent.model_validate_json(line))
            except ValueError as exc:
                logger.warning("Skipping corrupt usage event at %s:%d: %s", self.path, lineno, exc)
        return events

    async def append(self, event: UsageEvent) -> None:
        async with self._lock:
            await asyncio.to_thread(self._append_line, event.model_dump_json())

    async def count_since(
        self, account_id: str, feature: UsageFeature, since: datetime,
    ) -> int:
        async with self._lock:
            events = await asyncio.to_thread(self._read_events)
        return sum(
            1
            for e in events
            if e.account_id == account_id and e.feature == feature and e.created_at >= since
        )


class PlanSource(ABC):
    """Resolves an account's plan tier (billing state lives elsewhere)."""

    @abstractmethod
    async def plan_for(self, account_id: str) -> PlanTier:
        """Return the account's current tier."""


class StaticPlanSource(PlanSource):
    """Plan tiers from a fixed mapping; unknown accounts get ``default``."""

    def __init__(
        self,
        accounts: dict[str, PlanTier] | None = None,
        default: PlanTier = PlanTier.FREE,
    ) -> None:
        self._accounts = dict(accounts or {})
        self._default = default

    async def plan_for(self, account_id: str) -> PlanTier:
        return self._accounts.get(account_id, self._default)
