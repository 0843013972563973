"""Inventory exception classes.

Every failure the inventory core can report is one of these, so the transport
layer can map each family to a distinct response.

Exception Hierarchy:
    InventoryError (base)
    ├── NotFoundError
    │   └── BatchNotFound
    ├── DataCorruptionError
    │   └── DuplicateRecord
    ├── ValidationFailure
    │   ├── InvalidQuantity
    │   ├── InvalidIdentifier
    │   ├── InvalidFreshness
    │   └── InsufficientStock
    └── StoreError
        ├── CollectionNotFound
        ├── CorruptCollection
        └── StoreWriteError
"""


class InventoryError(Exception):
    """Base exception for all inventory errors."""

    pass


class NotFoundError(InventoryError):
    """A lookup by id matched zero records."""

    pass


class DataCorruptionError(InventoryError):
    """A persisted collection violates a uniqueness invariant."""

    pass


class ValidationFailure(InventoryError):
    """A requested mutation violates a domain rule."""

    pass


class StoreError(InventoryError):
    """The collection store could not read or write a collection."""

    def __init__(self, collection: str, message: str):
        self.collection = collection
        super().__init__(message)


class BatchNotFound(NotFoundError):
    """Raised when no batch carries the requested ID."""

    def __init__(self, batch_id):
        self.batch_id = batch_id
        super().__init__(f"The Batch with the ID: {batch_id} couldn't be found")


class DuplicateRecord(DataCorruptionError):
    """Raised when more than one record shares an ID."""

    def __init__(self, kind: str, record_id, count: int):
        self.kind = kind
        self.record_id = record_id
        self.count = count
        super().__init__(
            f"Corrupted data: there are multiple ({count}) instances of {kind} with ID: {record_id}"
        )


class InvalidQuantity(ValidationFailure):
    """Raised when a portion count is not an acceptable integer."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r}")


class InvalidIdentifier(ValidationFailure):
    """Raised when a supplied id is not a UUID."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r} is not a UUID")


class InvalidFreshness(ValidationFailure):
    """Raised when a freshness filter names no known category."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown freshness: {value!r}")


class InsufficientStock(ValidationFailure):
    """Raised when removing more portions than a batch holds.

    Attributes:
        batch_id: Batch the removal was attempted on
        requested: Portions the caller asked for
        available: Portions actually in stock
    """

    def __init__(self, batch_id, requested: int, available: int):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot remove the desired quantity of: {requested} Portions from the Batch "
            f"with ID: {batch_id} because only {available} are available"
        )


class CollectionNotFound(StoreError):
    """Raised when the backing collection does not exist."""

    def __init__(self, collection: str, location=None):
        self.location = location
        where = f" at {location}" if location else ""
        super().__init__(collection, f"Collection '{collection}' not found{where}")


class CorruptCollection(StoreError):
    """Raised when a collection's records cannot be parsed."""

    def __init__(self, collection: str, reason: str):
        self.reason = reason
        super().__init__(collection, f"Collection '{collection}' is corrupt: {reason}")


class StoreWriteError(StoreError):
    """Raised when a collection could not be durably written."""

    def __init__(self, collection: str, reason: str):
        self.reason = reason
        super().__init__(collection, f"Failed to write collection '{collection}': {reason}")
