from datetime import datetime, timedelta
from typing import List, Optional

from edudash.core.result import ErrorKind, SourceResult
from edudash.models.feature import Tier
from edudash.models.subscription import ProfileRecord, SubscriptionStatus
from edudash.models.usage_event import UsageEvent


class StaticSubscriptionSource:
    def __init__(
        self,
        tier: Tier = Tier.FREE,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        role: Optional[str] = "parent",
    ):
        self.profile = ProfileRecord(tier=tier, status=status, role=role)
        self.calls = 0

    def fetch(self, actor_id: str) -> SourceResult[ProfileRecord]:
        self.calls += 1
        return SourceResult.success(self.profile)


class FailingSubscriptionSource:
    def fetch(self, actor_id: str) -> SourceResult[ProfileRecord]:
        return SourceResult.failure(ErrorKind.UNAVAILABLE, "profile store offline")


class InMemoryUsageEventLog:
    def __init__(self, events: Optional[List[UsageEvent]] = None):
        self.events: List[UsageEvent] = list(events or [])

    def append(self, actor_id: str, feature_id: str, occurred_at: datetime) -> SourceResult[UsageEvent]:
        event = UsageEvent(actor_id=actor_id, feature_id=feature_id, occurred_at=occurred_at)
        self.events.append(event)
        return SourceResult.success(event)

    def _window(self, actor_id: str, start: datetime, end: datetime) -> List[UsageEvent]:
        return [
            e for e in self.events
            if e.actor_id == actor_id and start <= e.occurred_at <= end
        ]

    def count(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[int]:
        return SourceResult.success(len(self._window(actor_id, start, end)))

    def list_events(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[List[UsageEvent]]:
        return SourceResult.success(self._window(actor_id, start, end))


class FailingUsageEventLog:
    """Reads and writes both fail, as if the store were unreachable."""

    def __init__(self, fail_reads: bool = True, fail_writes: bool = True):
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.appended = 0

    def append(self, actor_id: str, feature_id: str, occurred_at: datetime) -> SourceResult[UsageEvent]:
        if self.fail_writes:
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log write failed")
        self.appended += 1
        return SourceResult.success(UsageEvent(actor_id=actor_id, feature_id=feature_id, occurred_at=occurred_at))

    def count(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[int]:
        if self.fail_reads:
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log read failed")
        return SourceResult.success(0)

    def list_events(self, actor_id: str, start: datetime, end: datetime) -> SourceResult[List[UsageEvent]]:
        if self.fail_reads:
            return SourceResult.failure(ErrorKind.UNAVAILABLE, "usage log read failed")
        return SourceResult.success([])


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)
