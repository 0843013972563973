"""Inventory operations: read-modify-write workflows over the batch and event collections.

Every operation loads the full collections it needs, changes them in memory
and writes the full collection back. The clock is read once per operation and
that single instant is used for every freshness computed during the call.

Movements (add, remove, dispose) are two sequential writes: the batch
collection first, then the event collection. They are not atomic; when the
second write fails the batch change stays persisted without its history entry,
the StoreError propagates, and `find_batches_missing_history` reports the batch.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, List, Optional, Union
from uuid import UUID

from larder.domain.Batch import Batch
from larder.domain.BatchEvent import BatchEvent, BatchEventType, record_event
from larder.domain.Freshness import Freshness
from larder.domain.Product import Product
from larder.domain.exceptions import (
    BatchNotFound, CorruptCollection, InsufficientStock, InvalidFreshness, InvalidQuantity, StoreError
)
from larder.events.Event_Bus import GLOBAL_EVENT_BUS, EventBus
from larder.infra.Collection_Store import CollectionStore
from larder.logic.inventory.lookup import require_one
from larder.logic.reporting.overview import OverviewByFreshness, compute_overview_by_freshness
from larder.utilities.constants import BATCHES, BATCH_EVENTS, BATCH_EVENT_RECORDED, PRODUCTS
from larder.utilities.dates import as_utc, utc_now

logger = logging.getLogger(__name__)

__all__ = ["InventoryService"]


def _as_batch_id(batch_id: Union[UUID, str]) -> UUID:
    if isinstance(batch_id, UUID):
        return batch_id
    try:
        return UUID(str(batch_id))
    except ValueError:
        # A malformed id can only ever match zero batches
        raise BatchNotFound(batch_id) from None


def _require_count(field: str, value, *, minimum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise InvalidQuantity(field, value)
    return value


class InventoryService:
    def __init__(self, store: CollectionStore, clock: Callable[[], datetime] = utc_now,
                 event_bus: Optional[EventBus] = None):
        self.store = store
        self._clock = clock
        self._event_bus = event_bus if event_bus is not None else GLOBAL_EVENT_BUS

    def now(self) -> datetime:
        """The service clock, as an aware UTC datetime."""
        return as_utc(self._clock())

    # --- Collection helpers -------------------------------------------------
    def _load(self, name: str, factory):
        records = self.store.read(name)
        try:
            return [factory(record) for record in records]
        except (KeyError, ValueError, TypeError) as e:
            logger.error("Unparseable record in collection '%s': %r", name, e)
            raise CorruptCollection(name, f"unparseable record: {e!r}") from e

    def _load_batches(self) -> List[Batch]:
        return self._load(BATCHES, Batch.from_dict)

    def _save_batches(self, batches: List[Batch]) -> None:
        self.store.write(BATCHES, [b.to_dict() for b in batches])

    def _record(self, batch: Batch, event_type: BatchEventType, now: datetime) -> BatchEvent:
        """Second phase of a movement: append the event for an already persisted batch change."""
        event = record_event(batch, event_type, now)
        try:
            with self.store.locked(BATCH_EVENTS):
                # Raw records: history of other batches is carried over untouched
                records = self.store.read(BATCH_EVENTS)
                records.append(event.to_dict())
                self.store.write(BATCH_EVENTS, records)
        except StoreError:
            logger.warning("Batch %s was persisted but its %s event was not recorded", batch.id, event_type)
            raise
        self._event_bus.publish(BATCH_EVENT_RECORDED, {"event": event, "batch": batch})
        return event

    # --- Queries --------------------------------------------------------------
    def list_products(self) -> List[Product]:
        return self._load(PRODUCTS, Product.from_dict)

    def list_batches(self, freshness: Optional[Union[Freshness, str]] = None, *,
                     now: Optional[datetime] = None) -> List[Batch]:
        """All batches, or only those whose freshness at `now` (default: the clock) equals `freshness`.

        Batches close to a boundary can move category between two calls.
        """
        batches = self._load_batches()
        if freshness is None:
            return batches
        try:
            wanted = Freshness(freshness)
        except ValueError:
            raise InvalidFreshness(freshness) from None
        now = as_utc(now) if now is not None else self.now()
        return [b for b in batches if b.freshness(now) is wanted]

    def get_batch(self, batch_id: Union[UUID, str]) -> Batch:
        _, batch = require_one(self._load_batches(), _as_batch_id(batch_id))
        return batch

    def get_batch_history(self, batch_id: Union[UUID, str]) -> List[BatchEvent]:
        """Events of the batch in ascending eventDate order; empty when it has none."""
        wanted = _as_batch_id(batch_id)
        events = self._load(BATCH_EVENTS, BatchEvent.from_dict)
        return sorted((e for e in events if e.batch_id == wanted), key=lambda e: e.event_date)

    def get_overview_by_freshness(self) -> OverviewByFreshness:
        return compute_overview_by_freshness(self._load_batches(), self.now())

    def find_batches_missing_history(self) -> List[Batch]:
        """Batches whose stock is not explained by their history.

        A batch is reported when it has no event at all, or when its available
        quantity differs from the one snapshotted by its latest event. Both are
        left behind by a movement whose event write failed. A quantity change
        made through `fix_quantities` records no event and is reported as well.
        """
        batches = self._load_batches()
        latest = {}
        for event in sorted(self._load(BATCH_EVENTS, BatchEvent.from_dict), key=lambda e: e.event_date):
            latest[event.batch_id] = event
        return [b for b in batches
                if b.id not in latest or latest[b.id].available_quantity != b.available_quantity]

    # --- Movements --------------------------------------------------------------
    def add_batch(self, product_id: UUID, batch_size: int, expiration: Optional[datetime] = None) -> Batch:
        """Receive a new batch: persist it, then persist its Added event."""
        now = self.now()
        batch = Batch.create(product_id, batch_size, expiration, now=now)
        with self.store.locked(BATCHES):
            batches = self._load_batches()
            batches.append(batch)
            self._save_batches(batches)
            logger.info("Batch %s added: %d portion(s) of product %s", batch.id, batch.batch_size, batch.product_id)
            self._record(batch, BatchEventType.Added, now)
        return batch

    def remove_from_batch(self, batch_id: Union[UUID, str], quantity: int) -> Batch:
        """Take `quantity` portions out of a batch.

        Rules:
          - quantity must be a positive integer (InvalidQuantity otherwise).
          - quantity above the available stock fails with InsufficientStock.
          - On any failure nothing is written.
          - The event is Emptied when the batch reaches zero, PortionsRemoved otherwise.
        """
        _require_count("quantity", quantity, minimum=1)
        wanted = _as_batch_id(batch_id)
        now = self.now()
        with self.store.locked(BATCHES):
            batches = self._load_batches()
            _, batch = require_one(batches, wanted)
            if quantity > batch.available_quantity:
                raise InsufficientStock(wanted, quantity, batch.available_quantity)
            batch.available_quantity -= quantity
            self._save_batches(batches)
            logger.info("Batch %s: removed %d portion(s), %d left", batch.id, quantity, batch.available_quantity)
            event_type = BatchEventType.Emptied if batch.is_empty else BatchEventType.PortionsRemoved
            self._record(batch, event_type, now)
        return batch

    def dispose_of_batch(self, batch_id: Union[UUID, str]) -> Batch:
        """Throw away whatever is left of a batch; the batch record itself stays."""
        wanted = _as_batch_id(batch_id)
        now = self.now()
        with self.store.locked(BATCHES):
            batches = self._load_batches()
            _, batch = require_one(batches, wanted)
            disposed = batch.available_quantity
            batch.available_quantity = 0
            self._save_batches(batches)
            logger.info("Batch %s disposed of (%d portion(s) discarded)", batch.id, disposed)
            self._record(batch, BatchEventType.DisposedOf, now)
        return batch

    # --- Administrative corrections (no event recorded) -----------------------
    def fix_expiration_date(self, batch_id: Union[UUID, str], new_expiration: datetime) -> Batch:
        wanted = _as_batch_id(batch_id)
        with self.store.locked(BATCHES):
            batches = self._load_batches()
            _, batch = require_one(batches, wanted)
            batch.expiration = as_utc(new_expiration)
            self._save_batches(batches)
        logger.info("Batch %s: expiration corrected to %s", batch.id, batch.expiration.isoformat())
        return batch

    def fix_quantities(self, batch_id: Union[UUID, str], new_batch_size: int, new_available_quantity: int) -> Batch:
        """Overwrite both quantities of a batch.

        The values are taken as given: an available quantity above the batch
        size is accepted (operator override) and only logged.
        """
        _require_count("batch size", new_batch_size, minimum=0)
        _require_count("available quantity", new_available_quantity, minimum=0)
        wanted = _as_batch_id(batch_id)
        if new_available_quantity > new_batch_size:
            logger.warning("Batch %s: available quantity %d exceeds batch size %d",
                           wanted, new_available_quantity, new_batch_size)
        with self.store.locked(BATCHES):
            batches = self._load_batches()
            _, batch = require_one(batches, wanted)
            batch.batch_size = new_batch_size
            batch.available_quantity = new_available_quantity
            self._save_batches(batches)
        logger.info("Batch %s: quantities corrected to %d/%d", batch.id, new_available_quantity, new_batch_size)
        return batch
