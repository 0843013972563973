"""Batch history: immutable snapshots of a batch taken whenever its stock changes."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from larder.domain.Batch import Batch, is_count
from larder.domain.Freshness import Freshness, classify
from larder.utilities.dates import as_utc, format_instant, parse_instant


class BatchEventType(str, Enum):
    Added = "Added"
    PortionsRemoved = "PortionsRemoved"
    Emptied = "Emptied"
    DisposedOf = "DisposedOf"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BatchEvent:
    batch_id: UUID
    event_date: datetime
    event_type: BatchEventType
    available_quantity: int
    freshness: Freshness

    def __str__(self) -> str:
        return (f"{format_instant(self.event_date)} {self.event_type} {self.batch_id} "
                f"- {self.available_quantity} left - {self.freshness}")

    @staticmethod
    def from_dict(data):
        available = data["availableQuantity"]
        if not is_count(available):
            raise ValueError(f"Non-integer quantity in event record of batch {data.get('batchId')!r}")
        return BatchEvent(
            batch_id=UUID(str(data["batchId"])),
            event_date=parse_instant(data["eventDate"]),
            event_type=BatchEventType(data["eventType"]),
            available_quantity=available,
            freshness=Freshness(data["freshness"]),
        )

    def to_dict(self):
        return {
            "batchId": str(self.batch_id),
            "eventDate": format_instant(self.event_date),
            "eventType": self.event_type.value,
            "availableQuantity": self.available_quantity,
            "freshness": self.freshness.value,
        }


def record_event(batch: Batch, event_type: BatchEventType, now: datetime) -> BatchEvent:
    """Snapshot `batch` as it stands at `now`. Nothing is persisted here."""
    now = as_utc(now)
    return BatchEvent(
        batch_id=batch.id,
        event_date=now,
        event_type=event_type,
        available_quantity=batch.available_quantity,
        freshness=classify(batch.expiration, now),
    )


__all__ = ["BatchEventType", "BatchEvent", "record_event"]
