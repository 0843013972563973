from fastapi import (
    FastAPI,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.responses import JSONResponse

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional
from uuid import UUID
import logging

from larder.domain.Freshness import Freshness
from larder.domain.exceptions import (
    DataCorruptionError,
    InsufficientStock,
    NotFoundError,
    StoreError,
    ValidationFailure,
)
from larder.events.Event_Bus import GLOBAL_EVENT_BUS, log_listener
from larder.infra.Collection_Store import JsonFileCollectionStore
from larder.infra.paths import BACKUP_DIR
from larder.infra.pdf_utils import generate_pdf_for_overview
from larder.logic.inventory.operations import InventoryService
from larder.utilities.backup import BackupManager
from larder.utilities.config import BACKUPS_ENABLED, BACKUPS_KEEP, DATA_DIR
from larder.utilities.constants import BATCH_EVENT_RECORDED, COLLECTIONS
from larder.utilities.validators import AddBatchInput, FixExpirationInput, FixQuantitiesInput

# Logging
logger = logging.getLogger("larder_app")

# Initialize FastAPI app
app = FastAPI(title="Larder Inventory API")


@lru_cache(maxsize=1)
def get_backup_manager() -> Optional[BackupManager]:
    """Backups of the collection files, or None when BACKUPS_ENABLED is off."""
    return BackupManager(DATA_DIR, BACKUP_DIR, keep=BACKUPS_KEEP) if BACKUPS_ENABLED else None


@lru_cache(maxsize=1)
def get_service() -> InventoryService:
    """Inventory service over the JSON collections in DATA_DIR (built once per process)."""
    backups = get_backup_manager()
    store = JsonFileCollectionStore(DATA_DIR, backup_manager=backups)
    store.ensure_collections(COLLECTIONS)
    logger.info("Inventory data directory: %s (backups %s)", DATA_DIR, "on" if backups else "off")
    return InventoryService(store)


@app.on_event("startup")
def _startup_event_logging():
    """Log every recorded batch event."""
    GLOBAL_EVENT_BUS.subscribe(BATCH_EVENT_RECORDED, log_listener)


# -------------------- Error mapping --------------------
@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": "not found", "description": str(exc)})


@app.exception_handler(ValidationFailure)
async def _validation_failure(request: Request, exc: ValidationFailure):
    content = {"error": "invalid request", "description": str(exc)}
    if isinstance(exc, InsufficientStock):
        content.update({"error": "insufficient stock", "requested": exc.requested, "available": exc.available})
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(DataCorruptionError)
async def _data_corruption(request: Request, exc: DataCorruptionError):
    logger.error("Data corruption on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "corrupted data", "description": str(exc)})


@app.exception_handler(StoreError)
async def _store_failure(request: Request, exc: StoreError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "storage failure", "collection": exc.collection,
                                                  "description": str(exc)})


# -------------------- Helpers --------------------
def _batch_payload(batch, now: datetime) -> dict:
    """Persisted fields plus the freshness at response time."""
    data = batch.to_dict()
    data["freshness"] = batch.freshness(now).value
    return data


# -------------------- API: Products --------------------
@app.get('/api/products')
def api_products(service: InventoryService = Depends(get_service)):
    products = service.list_products()
    return {"count": len(products), "products": [p.to_dict() for p in products]}


# -------------------- API: Batches --------------------
@app.get('/api/batches')
def api_batches(freshness: Optional[Freshness] = Query(default=None),
                service: InventoryService = Depends(get_service)):
    now = service.now()
    batches = service.list_batches(freshness, now=now)
    return {
        "count": len(batches),
        "freshness": freshness.value if freshness else None,
        "batches": [_batch_payload(b, now) for b in batches],
    }


@app.get('/api/batches/unrecorded')
def api_batches_unrecorded(service: InventoryService = Depends(get_service)):
    """Batches without any history entry (an event write failed after the batch was saved)."""
    now = service.now()
    batches = service.find_batches_missing_history()
    return {"count": len(batches), "batches": [_batch_payload(b, now) for b in batches]}


@app.put('/api/batches')
def api_add_batch(payload: AddBatchInput, service: InventoryService = Depends(get_service)):
    batch = service.add_batch(payload.product_id, payload.batch_size, payload.expiration)
    return _batch_payload(batch, service.now())


@app.get('/api/batches/{batch_id}')
def api_batch(batch_id: UUID, service: InventoryService = Depends(get_service)):
    return _batch_payload(service.get_batch(batch_id), service.now())


@app.get('/api/batches/{batch_id}/history')
def api_batch_history(batch_id: UUID, service: InventoryService = Depends(get_service)):
    events = service.get_batch_history(batch_id)
    return {"batchId": str(batch_id), "count": len(events), "events": [e.to_dict() for e in events]}


@app.post('/api/batches/{batch_id}/remove/{quantity}')
def api_remove_from_batch(batch_id: UUID, quantity: int, service: InventoryService = Depends(get_service)):
    logger.info("Remove request batch=%s quantity=%s", batch_id, quantity)
    batch = service.remove_from_batch(batch_id, quantity)
    return _batch_payload(batch, service.now())


@app.post('/api/batches/{batch_id}/dispose')
def api_dispose_of_batch(batch_id: UUID, service: InventoryService = Depends(get_service)):
    batch = service.dispose_of_batch(batch_id)
    return _batch_payload(batch, service.now())


@app.patch('/api/batches/{batch_id}/expiration')
def api_fix_expiration(batch_id: UUID, payload: FixExpirationInput,
                       service: InventoryService = Depends(get_service)):
    batch = service.fix_expiration_date(batch_id, payload.expiration)
    return _batch_payload(batch, service.now())


@app.patch('/api/batches/{batch_id}/quantities')
def api_fix_quantities(batch_id: UUID, payload: FixQuantitiesInput,
                       service: InventoryService = Depends(get_service)):
    batch = service.fix_quantities(batch_id, payload.batch_size, payload.available_quantity)
    return _batch_payload(batch, service.now())


# -------------------- API: Overview --------------------
@app.get('/api/overview/freshness')
def api_overview_by_freshness(service: InventoryService = Depends(get_service)):
    return service.get_overview_by_freshness().to_dict()


@app.get('/api/overview/freshness/pdf')
def api_overview_pdf(service: InventoryService = Depends(get_service)):
    overview = service.get_overview_by_freshness()
    pdf_bytes = generate_pdf_for_overview(overview)
    stamp = overview.generated_at.strftime('%Y%m%d_%H%M')
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename=inventory_overview_{stamp}.pdf"
        },
    )


# -------------------- API: Backups --------------------
def _require_backups(backups: Optional[BackupManager]) -> BackupManager:
    if backups is None:
        raise HTTPException(status_code=404, detail="Backups are disabled")
    return backups


@app.get('/api/backups')
def api_backups(backups: Optional[BackupManager] = Depends(get_backup_manager)):
    """Backups of every collection, newest first."""
    listed = _require_backups(backups).list_backups()
    return {"count": len(listed), "backups": listed}


@app.post('/api/backups/{backup_name}/restore')
def api_restore_backup(backup_name: str,
                       backups: Optional[BackupManager] = Depends(get_backup_manager),
                       service: InventoryService = Depends(get_service)):
    """Put a backup back in place of its collection file."""
    backups = _require_backups(backups)
    collection = Path(BackupManager.original_name(backup_name)).stem
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"No collection matches backup {backup_name}")
    # Restores wait for any read-modify-write cycle on the collection to finish
    with service.store.locked(collection):
        restored = backups.restore_backup(backup_name)
    if not restored:
        raise HTTPException(status_code=404, detail=f"Backup not found: {backup_name}")
    logger.info("Collection '%s' restored from %s", collection, backup_name)
    return {"restored": backup_name, "collection": collection}
