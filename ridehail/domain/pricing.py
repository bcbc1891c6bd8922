"""
Fare Estimation  (Strategy Pattern)
===================================

Formula
-------
Fare = (Base_Fare + Distance x Rate_Per_KM) x Surge_Multiplier

* **Surge_Multiplier** = clamp(open_requests / available_drivers, 1.0, 3.0)
  and 3.0 when no driver is available.

The estimate is quoted when the trip is requested and stored on the trip;
it is not recomputed on completion.

Complexity: O(1) per estimate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .entities import Location
from .geo import haversine_km

MAX_SURGE = 3.0


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance_km: float, base_fare: float, rate_per_km: float
    ) -> float: ...


class StandardPricing(PricingStrategy):
    def calculate(
        self, distance_km: float, base_fare: float, rate_per_km: float
    ) -> float:
        return round(base_fare + distance_km * rate_per_km, 2)


class SurgePricing(PricingStrategy):
    def __init__(self, surge_multiplier: float = 1.0):
        self.surge_multiplier = surge_multiplier

    def calculate(
        self, distance_km: float, base_fare: float, rate_per_km: float
    ) -> float:
        raw = (base_fare + distance_km * rate_per_km) * self.surge_multiplier
        return round(raw, 2)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the trip routes."""

    def __init__(self, base_fare: float = 2.5, rate_per_km: float = 1.2):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    @staticmethod
    def compute_surge(open_requests: int, available_drivers: int) -> float:
        if available_drivers <= 0:
            return MAX_SURGE
        return min(MAX_SURGE, max(1.0, open_requests / available_drivers))

    def strategy_for(self, surge: float) -> PricingStrategy:
        if surge <= 1.0:
            return StandardPricing()
        return SurgePricing(surge)

    def estimate_fare(
        self,
        pickup: Location,
        dropoff: Location,
        open_requests: int = 1,
        available_drivers: int = 1,
    ) -> float:
        distance = haversine_km(pickup.lat, pickup.lng, dropoff.lat, dropoff.lng)
        surge = self.compute_surge(open_requests, available_drivers)
        return self.strategy_for(surge).calculate(
            distance, self.base_fare, self.rate_per_km
        )
