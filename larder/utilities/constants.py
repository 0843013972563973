from datetime import timedelta
from typing import Final

# Collection names understood by every CollectionStore
PRODUCTS: Final[str] = "products"
BATCHES: Final[str] = "batches"
BATCH_EVENTS: Final[str] = "batchEvents"
COLLECTIONS: Final[tuple[str, ...]] = (PRODUCTS, BATCHES, BATCH_EVENTS)

# Rolling window, not a calendar day
EXPIRING_WINDOW: Final[timedelta] = timedelta(hours=24)

# Event bus topics
BATCH_EVENT_RECORDED: Final[str] = "inventory.batch_event"
