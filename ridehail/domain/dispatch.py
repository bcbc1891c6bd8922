"""
Dispatch policy for open trip requests.

A REQUESTED trip is first offered to drivers within ``base_radius_km`` of
the pickup.  Each dispatch interval without an acceptance widens the search
by ``step_km`` up to ``max_radius_km``.  Once the request has waited longer
than ``timeout_seconds`` it is expired (cancelled with reason
``no_driver_found``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

NO_DRIVER_FOUND = "no_driver_found"


@dataclass(frozen=True)
class DispatchPolicy:
    base_radius_km: float = 3.0
    step_km: float = 1.0
    max_radius_km: float = 10.0
    interval_seconds: int = 10
    timeout_seconds: int = 300

    def search_radius_km(self, age_seconds: float) -> float:
        rounds = max(0, int(age_seconds // max(self.interval_seconds, 1)))
        return min(self.max_radius_km, self.base_radius_km + rounds * self.step_km)

    def is_expired(self, age_seconds: float) -> bool:
        return age_seconds > self.timeout_seconds


def age_seconds(created_at: datetime | None, now: datetime | None = None) -> float:
    """Seconds since *created_at*; naive timestamps are treated as UTC."""
    if created_at is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds())
