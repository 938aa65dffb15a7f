"""
Idempotency policy — behavior configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


def _delta(
    seconds: float | None,
    minutes: float | None,
    hours: float | None,
    delta: timedelta | None,
) -> timedelta:
    if delta is not None:
        return delta
    return timedelta(seconds=(seconds or 0) + (minutes or 0) * 60 + (hours or 0) * 3600)


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Idempotency policy configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        policy = (
            Policy()
            .with_ttl(hours=24)
            .with_retry_after(seconds=1)
            .with_store_timeout(seconds=5)
        )

    ttl: lifetime of a record from its claim; the sweeper deletes it afterwards.
    retry_after: delay suggested to callers that hit an in-flight execution.
    status_code: status recorded with a completed response.
    store_timeout: bound on every store call; a timeout is a store error.

    Note: Immutable — each method returns new Policy.
    """

    ttl: timedelta = timedelta(hours=24)
    retry_after: timedelta = timedelta(seconds=1)
    status_code: int = 200
    store_timeout: timedelta = timedelta(seconds=5)

    def with_ttl(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Set record TTL.

        Example:
            .with_ttl(hours=24)
            .with_ttl(delta=timedelta(days=7))
        """
        ttl = _delta(seconds, minutes, hours, delta)
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        return Policy(
            ttl=ttl,
            retry_after=self.retry_after,
            status_code=self.status_code,
            store_timeout=self.store_timeout,
        )

    def with_retry_after(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """Set the retry delay suggested on Conflict."""
        return Policy(
            ttl=self.ttl,
            retry_after=_delta(seconds, None, None, delta),
            status_code=self.status_code,
            store_timeout=self.store_timeout,
        )

    def with_status_code(self, code: int) -> Policy:
        """Set the status code recorded with completed responses."""
        return Policy(
            ttl=self.ttl,
            retry_after=self.retry_after,
            status_code=code,
            store_timeout=self.store_timeout,
        )

    def with_store_timeout(
        self,
        *,
        seconds: float | None = None,
        delta: timedelta | None = None,
    ) -> Policy:
        """
        Bound each store call.

        Example:
            .with_store_timeout(seconds=2)
        """
        timeout = _delta(seconds, None, None, delta)
        if timeout <= timedelta(0):
            raise ValueError("store_timeout must be positive")
        return Policy(
            ttl=self.ttl,
            retry_after=self.retry_after,
            status_code=self.status_code,
            store_timeout=timeout,
        )


__all__ = ("Policy",)
