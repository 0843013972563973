"""Freshness overview of the inventory.

Counts batches and sums available portions per freshness category. Every
category is present, with zeroes when no batch falls in it.
"""
from datetime import datetime
from typing import Dict, Iterable

from larder.domain.Batch import Batch
from larder.domain.Freshness import Freshness
from larder.utilities.dates import as_utc, format_instant


class OverviewByFreshness:
    def __init__(self, generated_at: datetime):
        self.generated_at = as_utc(generated_at)
        self.batches: Dict[Freshness, int] = {f: 0 for f in Freshness}
        self.portions: Dict[Freshness, int] = {f: 0 for f in Freshness}

    def add_batch(self, batch: Batch):
        f = batch.freshness(self.generated_at)
        self.batches[f] += 1
        self.portions[f] += batch.available_quantity

    @property
    def fresh_batches(self) -> int: return self.batches[Freshness.Fresh]
    @property
    def fresh_portions(self) -> int: return self.portions[Freshness.Fresh]
    @property
    def expiring_today_batches(self) -> int: return self.batches[Freshness.ExpiringToday]
    @property
    def expiring_today_portions(self) -> int: return self.portions[Freshness.ExpiringToday]
    @property
    def expired_batches(self) -> int: return self.batches[Freshness.Expired]
    @property
    def expired_portions(self) -> int: return self.portions[Freshness.Expired]

    @property
    def total_batches(self) -> int:
        return sum(self.batches.values())

    @property
    def total_portions(self) -> int:
        return sum(self.portions.values())

    def __str__(self) -> str:
        parts = [f"{f}: {self.batches[f]}/{self.portions[f]}" for f in Freshness]
        return "Overview - " + ", ".join(parts)

    __repr__ = __str__

    def to_dict(self):
        return {
            "generated_at": format_instant(self.generated_at),
            "fresh_batches": self.fresh_batches,
            "fresh_portions": self.fresh_portions,
            "expiring_today_batches": self.expiring_today_batches,
            "expiring_today_portions": self.expiring_today_portions,
            "expired_batches": self.expired_batches,
            "expired_portions": self.expired_portions,
        }


def compute_overview_by_freshness(batches: Iterable[Batch], now: datetime) -> OverviewByFreshness:
    """Aggregate `batches` by their freshness at `now` (a single instant for the whole pass)."""
    overview = OverviewByFreshness(now)
    for batch in batches:
        overview.add_batch(batch)
    return overview


__all__ = ["OverviewByFreshness", "compute_overview_by_freshness"]
