import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from larder.domain.Batch import Batch
from larder.domain.BatchEvent import BatchEventType
from larder.domain.Freshness import Freshness
from larder.domain.exceptions import (
    BatchNotFound,
    CollectionNotFound,
    CorruptCollection,
    DuplicateRecord,
    InsufficientStock,
    InvalidFreshness,
    InvalidIdentifier,
    InvalidQuantity,
    StoreWriteError,
    ValidationFailure,
)
from larder.events.Event_Bus import EventBus
from larder.infra.Collection_Store import InMemoryCollectionStore, JsonFileCollectionStore
from larder.logic.inventory.operations import InventoryService
from larder.utilities.constants import BATCHES, BATCH_EVENTS, BATCH_EVENT_RECORDED, COLLECTIONS, PRODUCTS

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
PRODUCT_ID = uuid4()
PRODUCTS_DATA = [{"id": str(PRODUCT_ID), "name": "Chicken Curry", "description": "Mild"}]


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingStore(InMemoryCollectionStore):
    """Counts writes per collection and can be told to fail writing one of them."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.writes = {}
        self.fail_on = None

    def write(self, name, records):
        if name == self.fail_on:
            raise StoreWriteError(name, "disk full")
        self.writes[name] = self.writes.get(name, 0) + 1
        super().write(name, records)


def _empty_inventory():
    return {PRODUCTS: list(PRODUCTS_DATA), BATCHES: [], BATCH_EVENTS: []}


class TestInventoryOperations(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock(NOW)
        self.store = RecordingStore(_empty_inventory())
        self.bus = EventBus()
        self.service = InventoryService(self.store, clock=self.clock, event_bus=self.bus)

    def _add(self, size=10, expiration=None):
        return self.service.add_batch(PRODUCT_ID, size, expiration or NOW + timedelta(days=3))

    # --- Queries ---------------------------------------------------------------
    def test_list_products(self):
        products = self.service.list_products()
        self.assertEqual(len(products), 1)
        self.assertEqual(products[0].id, PRODUCT_ID)
        self.assertEqual(products[0].name, "Chicken Curry")

    def test_add_batch_then_list_and_history(self):
        batch = self.service.add_batch(PRODUCT_ID, 500, NOW + timedelta(days=5))
        batches = self.service.list_batches()
        self.assertEqual(len(batches), 1)
        stored = batches[0]
        self.assertEqual(stored.id, batch.id)
        self.assertEqual(stored.product_id, PRODUCT_ID)
        self.assertEqual(stored.batch_size, 500)
        self.assertEqual(stored.available_quantity, 500)

        history = self.service.get_batch_history(batch.id)
        self.assertEqual(len(history), 1)
        self.assertIs(history[0].event_type, BatchEventType.Added)
        self.assertEqual(history[0].available_quantity, 500)
        self.assertEqual(history[0].event_date, NOW)
        self.assertIs(history[0].freshness, Freshness.Fresh)

    def test_add_batch_default_expiration(self):
        batch = self.service.add_batch(PRODUCT_ID, 4)
        self.assertEqual(batch.expiration, NOW + timedelta(days=7))

    def test_add_batch_rejects_bad_size_without_writes(self):
        with self.assertRaises(InvalidQuantity):
            self.service.add_batch(PRODUCT_ID, 0)
        self.assertEqual(self.store.writes, {})

    def test_add_batch_rejects_malformed_product_id_without_writes(self):
        self._add()
        writes_before = dict(self.store.writes)
        with self.assertRaises(InvalidIdentifier) as ctx:
            self.service.add_batch("sku-42", 3, NOW + timedelta(days=1))
        self.assertIsInstance(ctx.exception, ValidationFailure)
        self.assertEqual(self.store.writes, writes_before)
        self.assertEqual(len(self.service.list_batches()), 1)

    def test_add_batch_accepts_product_id_as_text(self):
        batch = self.service.add_batch(str(PRODUCT_ID), 3)
        self.assertEqual(batch.product_id, PRODUCT_ID)
        self.assertEqual(self.service.list_batches()[0].product_id, PRODUCT_ID)

    def test_history_of_unknown_batch_is_empty(self):
        self._add()
        self.assertEqual(self.service.get_batch_history(uuid4()), [])

    def test_history_is_sorted_by_event_date(self):
        batch = self._add(size=10)
        self.clock.advance(hours=1)
        self.service.remove_from_batch(batch.id, 3)
        self.clock.advance(hours=1)
        self.service.remove_from_batch(batch.id, 7)
        # Store the events newest first
        self.store.write(BATCH_EVENTS, list(reversed(self.store.read(BATCH_EVENTS))))

        history = self.service.get_batch_history(batch.id)
        self.assertEqual([e.event_type for e in history],
                         [BatchEventType.Added, BatchEventType.PortionsRemoved, BatchEventType.Emptied])
        self.assertEqual([e.available_quantity for e in history], [10, 7, 0])
        dates = [e.event_date for e in history]
        self.assertEqual(dates, sorted(dates))

    def test_history_accepts_string_ids(self):
        batch = self._add()
        self.assertEqual(len(self.service.get_batch_history(str(batch.id))), 1)

    def test_get_batch(self):
        batch = self._add()
        self.assertEqual(self.service.get_batch(batch.id), batch)
        with self.assertRaises(BatchNotFound):
            self.service.get_batch(uuid4())
        with self.assertRaises(BatchNotFound):
            self.service.get_batch("definitely-not-a-uuid")

    def test_list_batches_by_freshness(self):
        fresh = self._add(expiration=NOW + timedelta(days=3))
        expiring = self._add(expiration=NOW + timedelta(hours=2))
        expired = self._add(expiration=NOW - timedelta(hours=1))

        self.assertEqual([b.id for b in self.service.list_batches(Freshness.Fresh)], [fresh.id])
        self.assertEqual([b.id for b in self.service.list_batches(Freshness.ExpiringToday)], [expiring.id])
        self.assertEqual([b.id for b in self.service.list_batches("Expired")], [expired.id])

    def test_list_batches_rejects_unknown_freshness(self):
        self._add()
        with self.assertRaises(InvalidFreshness) as ctx:
            self.service.list_batches("fresh")
        self.assertIsInstance(ctx.exception, ValidationFailure)
        self.assertEqual(ctx.exception.value, "fresh")

    def test_list_batches_by_freshness_moves_with_time(self):
        batch = self._add(expiration=NOW + timedelta(hours=25))
        self.assertEqual(len(self.service.list_batches(Freshness.Fresh)), 1)
        self.clock.advance(hours=2)
        self.assertEqual([b.id for b in self.service.list_batches(Freshness.ExpiringToday)], [batch.id])
        self.assertEqual(self.service.list_batches(Freshness.Fresh), [])

    def test_overview_by_freshness(self):
        for expiration in (NOW + timedelta(days=3), NOW + timedelta(hours=2), NOW - timedelta(hours=1)):
            self._add(size=10, expiration=expiration)
        overview = self.service.get_overview_by_freshness()
        self.assertEqual(overview.generated_at, NOW)
        for f in Freshness:
            self.assertEqual((overview.batches[f], overview.portions[f]), (1, 10))

    # --- Removing portions -------------------------------------------------
    def test_remove_decrements_and_records_portions_removed(self):
        batch = self._add(size=10)
        updated = self.service.remove_from_batch(batch.id, 4)
        self.assertEqual(updated.available_quantity, 6)
        self.assertEqual(updated.batch_size, 10)
        self.assertEqual(self.service.get_batch(batch.id).available_quantity, 6)
        last = self.service.get_batch_history(batch.id)[-1]
        self.assertIs(last.event_type, BatchEventType.PortionsRemoved)
        self.assertEqual(last.available_quantity, 6)

    def test_remove_everything_records_emptied(self):
        batch = self._add(size=10)
        updated = self.service.remove_from_batch(batch.id, 10)
        self.assertEqual(updated.available_quantity, 0)
        self.assertIs(self.service.get_batch_history(batch.id)[-1].event_type, BatchEventType.Emptied)

    def test_remove_too_much_fails_without_writes(self):
        batch = self._add(size=10)
        writes_before = dict(self.store.writes)
        batches_before = self.store.read(BATCHES)
        events_before = self.store.read(BATCH_EVENTS)

        with self.assertRaises(InsufficientStock) as ctx:
            self.service.remove_from_batch(batch.id, 11)
        self.assertEqual(ctx.exception.requested, 11)
        self.assertEqual(ctx.exception.available, 10)
        self.assertEqual(self.store.writes, writes_before)
        self.assertEqual(self.store.read(BATCHES), batches_before)
        self.assertEqual(self.store.read(BATCH_EVENTS), events_before)

    def test_remove_from_unknown_batch_fails_without_writes(self):
        self._add()
        writes_before = dict(self.store.writes)
        with self.assertRaises(BatchNotFound):
            self.service.remove_from_batch(uuid4(), 1)
        self.assertEqual(self.store.writes, writes_before)

    def test_remove_rejects_non_positive_quantities(self):
        batch = self._add()
        writes_before = dict(self.store.writes)
        for quantity in (0, -3):
            with self.assertRaises(InvalidQuantity):
                self.service.remove_from_batch(batch.id, quantity)
        self.assertEqual(self.store.writes, writes_before)

    def test_remove_from_duplicated_batch_is_corruption(self):
        batch = self._add()
        self.store.write(BATCHES, self.store.read(BATCHES) * 2)
        with self.assertRaises(DuplicateRecord) as ctx:
            self.service.remove_from_batch(batch.id, 1)
        self.assertEqual(ctx.exception.count, 2)
        self.assertEqual([r["availableQuantity"] for r in self.store.read(BATCHES)], [10, 10])

    def test_remove_after_expiry_records_expired_freshness(self):
        batch = self._add(size=5, expiration=NOW + timedelta(hours=1))
        self.clock.advance(hours=2)
        self.service.remove_from_batch(batch.id, 1)
        self.assertIs(self.service.get_batch_history(batch.id)[-1].freshness, Freshness.Expired)

    # --- Disposal ------------------------------------------------------------
    def test_dispose_of_batch(self):
        batch = self._add(size=8)
        self.service.remove_from_batch(batch.id, 2)
        disposed = self.service.dispose_of_batch(batch.id)
        self.assertEqual(disposed.available_quantity, 0)
        self.assertEqual(disposed.batch_size, 8)
        self.assertEqual(len(self.service.list_batches()), 1)
        history = self.service.get_batch_history(batch.id)
        self.assertIs(history[-1].event_type, BatchEventType.DisposedOf)
        self.assertEqual(history[-1].available_quantity, 0)

    def test_dispose_of_unknown_batch(self):
        with self.assertRaises(BatchNotFound):
            self.service.dispose_of_batch(uuid4())

    # --- Administrative corrections -----------------------------------------
    def test_fix_expiration_date_records_no_event(self):
        batch = self._add(expiration=NOW + timedelta(days=3))
        events_before = self.store.read(BATCH_EVENTS)
        fixed = self.service.fix_expiration_date(batch.id, NOW - timedelta(days=1))
        self.assertEqual(fixed.expiration, NOW - timedelta(days=1))
        self.assertEqual(self.service.get_batch(batch.id).expiration, NOW - timedelta(days=1))
        self.assertEqual(self.service.list_batches(Freshness.Expired), [fixed])
        self.assertEqual(self.store.read(BATCH_EVENTS), events_before)

    def test_fix_quantities_records_no_event(self):
        batch = self._add(size=10)
        events_before = self.store.read(BATCH_EVENTS)
        fixed = self.service.fix_quantities(batch.id, 12, 9)
        self.assertEqual((fixed.batch_size, fixed.available_quantity), (12, 9))
        self.assertEqual(self.service.get_batch(batch.id), fixed)
        self.assertEqual(self.store.read(BATCH_EVENTS), events_before)

    def test_fix_quantities_does_not_cross_check(self):
        batch = self._add(size=10)
        with self.assertLogs("larder.logic.inventory.operations", level="WARNING"):
            fixed = self.service.fix_quantities(batch.id, 5, 8)
        self.assertEqual((fixed.batch_size, fixed.available_quantity), (5, 8))

    def test_fix_quantities_rejects_negative_values(self):
        batch = self._add()
        with self.assertRaises(InvalidQuantity):
            self.service.fix_quantities(batch.id, -1, 0)
        with self.assertRaises(InvalidQuantity):
            self.service.fix_quantities(batch.id, 10, -1)

    def test_fix_on_unknown_batch(self):
        with self.assertRaises(BatchNotFound):
            self.service.fix_expiration_date(uuid4(), NOW)
        with self.assertRaises(BatchNotFound):
            self.service.fix_quantities(uuid4(), 1, 1)

    # --- Store failures ------------------------------------------------------
    def test_missing_collection_propagates(self):
        service = InventoryService(InMemoryCollectionStore({PRODUCTS: []}), clock=self.clock, event_bus=self.bus)
        with self.assertRaises(CollectionNotFound):
            service.list_batches()
        with self.assertRaises(CollectionNotFound):
            service.add_batch(PRODUCT_ID, 3)

    def test_unparseable_record_is_corrupt_collection(self):
        self.store.write(BATCHES, [{"id": "b1"}])
        with self.assertRaises(CorruptCollection):
            self.service.list_batches()

    def test_fractional_event_quantity_is_corrupt_collection(self):
        batch = self._add(size=5)
        events = self.store.read(BATCH_EVENTS)
        events[0]["availableQuantity"] = 5.9
        self.store.write(BATCH_EVENTS, events)
        with self.assertRaises(CorruptCollection):
            self.service.get_batch_history(batch.id)

    def test_failed_event_write_leaves_batch_without_history(self):
        self.store.fail_on = BATCH_EVENTS
        with self.assertRaises(StoreWriteError):
            self.service.add_batch(PRODUCT_ID, 6)
        batches = self.service.list_batches()
        self.assertEqual(len(batches), 1)
        self.assertEqual(self.service.get_batch_history(batches[0].id), [])
        self.assertEqual(self.service.find_batches_missing_history(), batches)

    def test_failed_batch_write_records_no_event(self):
        batch = self._add(size=5)
        self.store.fail_on = BATCHES
        with self.assertRaises(StoreWriteError):
            self.service.remove_from_batch(batch.id, 1)
        self.assertEqual(len(self.service.get_batch_history(batch.id)), 1)
        self.assertEqual(self.service.get_batch(batch.id).available_quantity, 5)

    def test_no_missing_history_in_a_healthy_inventory(self):
        self._add()
        self._add()
        self.assertEqual(self.service.find_batches_missing_history(), [])

    def test_failed_event_write_on_removal_is_reported(self):
        batch = self._add(size=10)
        self.store.fail_on = BATCH_EVENTS
        with self.assertRaises(StoreWriteError):
            self.service.remove_from_batch(batch.id, 4)
        self.assertEqual(self.service.get_batch(batch.id).available_quantity, 6)
        self.assertEqual(self.service.get_batch_history(batch.id)[-1].available_quantity, 10)
        self.assertEqual([b.id for b in self.service.find_batches_missing_history()], [batch.id])

    def test_failed_event_write_on_disposal_is_reported(self):
        kept = self._add(size=3)
        batch = self._add(size=5)
        self.store.fail_on = BATCH_EVENTS
        with self.assertRaises(StoreWriteError):
            self.service.dispose_of_batch(batch.id)
        self.assertEqual([b.id for b in self.service.find_batches_missing_history()], [batch.id])
        self.assertNotIn(kept.id, [b.id for b in self.service.find_batches_missing_history()])

    def test_latest_event_decides_when_events_are_stored_out_of_order(self):
        batch = self._add(size=10)
        self.clock.advance(minutes=5)
        self.service.remove_from_batch(batch.id, 4)
        self.store.write(BATCH_EVENTS, list(reversed(self.store.read(BATCH_EVENTS))))
        self.assertEqual(self.service.find_batches_missing_history(), [])

    def test_quantity_corrections_are_reported(self):
        batch = self._add(size=10)
        self.service.fix_quantities(batch.id, 10, 8)
        self.assertEqual([b.id for b in self.service.find_batches_missing_history()], [batch.id])

    # --- Notifications -------------------------------------------------------
    def test_recorded_events_are_published(self):
        received = []
        self.bus.subscribe(BATCH_EVENT_RECORDED, lambda name, payload: received.append(payload))
        batch = self._add(size=2)
        self.service.remove_from_batch(batch.id, 2)
        self.assertEqual([p["event"].event_type for p in received],
                         [BatchEventType.Added, BatchEventType.Emptied])
        self.assertEqual(received[0]["batch"].id, batch.id)

    def test_nothing_published_when_validation_fails(self):
        received = []
        batch = self._add(size=2)
        self.bus.subscribe(BATCH_EVENT_RECORDED, lambda name, payload: received.append(payload))
        with self.assertRaises(InsufficientStock):
            self.service.remove_from_batch(batch.id, 3)
        self.assertEqual(received, [])


class TestInventoryOnJsonFiles(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = JsonFileCollectionStore(Path(self._tmp.name))
        self.store.ensure_collections(COLLECTIONS)
        self.store.write(PRODUCTS, PRODUCTS_DATA)
        self.service = InventoryService(self.store, clock=FakeClock(NOW), event_bus=EventBus())

    def tearDown(self):
        self._tmp.cleanup()

    def test_batches_survive_a_new_service(self):
        added = {self.service.add_batch(PRODUCT_ID, n, NOW + timedelta(days=n)).id for n in (1, 2, 3)}
        reopened = InventoryService(JsonFileCollectionStore(Path(self._tmp.name)), clock=FakeClock(NOW))
        stored = reopened.list_batches()
        self.assertEqual({b.id for b in stored}, added)
        self.assertEqual(sorted(b.available_quantity for b in stored), [1, 2, 3])
        self.assertTrue(all(isinstance(b, Batch) for b in stored))

    def test_concurrent_removals_do_not_lose_updates(self):
        batch = self.service.add_batch(PRODUCT_ID, 20, NOW + timedelta(days=2))
        errors = []

        def take_one():
            try:
                self.service.remove_from_batch(batch.id, 1)
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=take_one) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        self.assertEqual(errors, [])
        self.assertEqual(self.service.get_batch(batch.id).available_quantity, 0)
        history = self.service.get_batch_history(batch.id)
        self.assertEqual(len(history), 21)
        self.assertEqual([e.event_type for e in history].count(BatchEventType.Emptied), 1)
        with self.assertRaises(InsufficientStock):
            self.service.remove_from_batch(batch.id, 1)
