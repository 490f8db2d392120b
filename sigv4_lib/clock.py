"""
Clock capability injected into the signer and verifier.
"""

from datetime import datetime, timezone

from sigv4_lib.codec import as_utc


class SystemClock:
    """Wall clock, in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at one instant, for deterministic signing."""

    def __init__(self, moment: datetime):
        self._moment = as_utc(moment)

    def now(self) -> datetime:
        return self._moment


STANDARD = SystemClock()
