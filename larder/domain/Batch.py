"""Batch domain entity: a lot of portions of one product with its own expiration and stock."""
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from larder.domain.exceptions import InvalidIdentifier, InvalidQuantity
from larder.domain.Freshness import Freshness, classify
from larder.utilities.config import DEFAULT_SHELF_LIFE_DAYS
from larder.utilities.dates import as_utc, format_instant, parse_instant, utc_now


def is_count(value) -> bool:
    # bool is an int subclass but never a portion count
    return isinstance(value, int) and not isinstance(value, bool)


class Batch:
    def __init__(self, id: UUID, product_id: UUID, expiration: datetime,
                 batch_size: int, available_quantity: int):
        self.id = id
        self.product_id = product_id
        self.expiration = as_utc(expiration)
        self.batch_size = batch_size
        self.available_quantity = available_quantity

    @classmethod
    def create(cls, product_id: UUID, batch_size: int, expiration: Optional[datetime] = None,
               *, now: Optional[datetime] = None) -> "Batch":
        '''
        Returns a new Batch with a freshly generated id and every portion available.
        Without an expiration the batch expires DEFAULT_SHELF_LIFE_DAYS after `now`.
        A product id that is not a UUID raises InvalidIdentifier.
        '''
        try:
            product_id = product_id if isinstance(product_id, UUID) else UUID(str(product_id))
        except ValueError:
            raise InvalidIdentifier("product id", product_id) from None
        if not is_count(batch_size) or batch_size <= 0:
            raise InvalidQuantity("batch size", batch_size)
        if expiration is None:
            expiration = (now or utc_now()) + timedelta(days=DEFAULT_SHELF_LIFE_DAYS)
        return cls(uuid4(), product_id, expiration, batch_size, batch_size)

    def freshness(self, now: datetime) -> Freshness:
        return classify(self.expiration, now)

    @property
    def is_empty(self) -> bool:
        return self.available_quantity == 0

    def __str__(self) -> str:
        return (f"Batch {self.id} of {self.product_id} - {self.available_quantity}/{self.batch_size} "
                f"portions - Exp: {format_instant(self.expiration)}")

    __repr__ = __str__

    def __eq__(self, other) -> bool:
        if not isinstance(other, Batch):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.id)

    @staticmethod
    def from_dict(data):
        '''Creates a Batch from its persisted record. Raises KeyError/ValueError/TypeError when malformed.'''
        batch_size = data["batchSize"]
        available = data["availableQuantity"]
        if not is_count(batch_size) or not is_count(available):
            raise ValueError(f"Non-integer quantities in batch record {data.get('id')!r}")
        return Batch(
            id=UUID(str(data["id"])),
            product_id=UUID(str(data["productId"])),
            expiration=parse_instant(data["expiration"]),
            batch_size=batch_size,
            available_quantity=available,
        )

    def to_dict(self):
        '''Converts the Batch to its persisted record (freshness is derived, never stored).'''
        return {
            "id": str(self.id),
            "productId": str(self.product_id),
            "expiration": format_instant(self.expiration),
            "batchSize": self.batch_size,
            "availableQuantity": self.available_quantity,
        }
