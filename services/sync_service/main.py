"""Sync Service - FastAPI application."""

import logging
import sys
import os
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../'))
from shared.config import get_connectivity_config, get_document_store_config
from shared.db_operations import DatabaseOperations
from shared.encryption import EncryptionService
from shared.models import QueueOperation, SubmitResult
from services.document_store.client import DocumentStoreClient
from services.reminder_scheduler.presenter import NotificationPresenter
from services.reminder_scheduler.scheduler import NotificationScheduler
from services.sync_service.connectivity import ConnectivityProbe
from services.sync_service.orchestrator import SyncOrchestrator
from services.sync_service.queues import (
    AppointmentQueue,
    DocumentQueue,
    ReminderQueue,
    UnsupportedOperationError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Process-wide collaborators wired at startup."""
    db_ops: DatabaseOperations
    remote: DocumentStoreClient
    connectivity: ConnectivityProbe
    orchestrators: Dict[str, SyncOrchestrator]
    scheduler: NotificationScheduler

    async def aclose(self):
        self.scheduler.cancel_all_notifications()
        await self.remote.aclose()
        await self.connectivity.aclose()


services: Optional[AppServices] = None


def build_services() -> AppServices:
    """Create the persistence layer, remote clients, queues and scheduler."""
    db_ops = DatabaseOperations(encryption_service=EncryptionService.from_env())
    db_ops.create_tables()

    store_config = get_document_store_config()
    remote = DocumentStoreClient(
        base_url=store_config["base_url"],
        api_key=store_config["api_key"],
        timeout=store_config["timeout"]
    )

    connectivity_config = get_connectivity_config()
    connectivity = ConnectivityProbe(
        probe_url=connectivity_config["probe_url"],
        timeout=connectivity_config["timeout"]
    )

    orchestrators = {
        queue.domain: SyncOrchestrator(queue, connectivity)
        for queue in (
            ReminderQueue(db_ops, remote),
            DocumentQueue(db_ops, remote),
            AppointmentQueue(db_ops, remote),
        )
    }

    scheduler = NotificationScheduler(db_ops, NotificationPresenter())

    return AppServices(
        db_ops=db_ops,
        remote=remote,
        connectivity=connectivity,
        orchestrators=orchestrators,
        scheduler=scheduler
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global services

    logger.info("Sync Service starting up...")
    services = build_services()
    logger.info(f"Queues initialized: {', '.join(services.orchestrators)}")

    yield

    await services.aclose()
    logger.info("Sync Service shutting down...")


# Create FastAPI application
app = FastAPI(
    title="Sync Service",
    description="Offline-first record sync and local reminder notifications",
    version="0.1.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handling middleware
@app.middleware("http")
async def error_handling_middleware(request: Request, call_next):
    """Global error handling middleware."""
    try:
        response = await call_next(request)
        return response
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc)
            }
        )


# Health check endpoint
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint."""
    db_healthy = False
    try:
        services.db_ops.list_keys()
        db_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    online = await services.connectivity.is_online()

    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": "sync_service",
        "version": "0.1.0",
        "dependencies": {
            "database": "up" if db_healthy else "down",
            "document_store": "reachable" if online else "unreachable"
        },
        "backlog": {
            domain: len(orchestrator.queue.list_queued())
            for domain, orchestrator in services.orchestrators.items()
        }
    }


@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """Root endpoint."""
    return {
        "service": "Sync Service",
        "version": "0.1.0",
        "status": "running"
    }


# Request/Response models
class ReminderRequest(BaseModel):
    """Request model for reminder writes."""
    type: str  # Medicine, Appointment
    schedule_type: Optional[str] = None
    medicine_name: Optional[str] = None
    dose: Optional[str] = None
    doctor_name: Optional[str] = None
    notes: Optional[str] = None
    time_of_day: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class DocumentRequest(BaseModel):
    """Request model for document uploads."""
    id: Optional[str] = None
    name: str
    base64_data: str
    mime_type: str
    extension: str
    file_size: Optional[int] = None
    source_type: Optional[str] = None
    original_file_name: Optional[str] = None


class AppointmentRequest(BaseModel):
    """Request model for appointment writes."""
    doctor_name: Optional[str] = None
    doctor_id: Optional[str] = None
    specialty: Optional[str] = None
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    meeting_url: Optional[str] = None
    status: Optional[str] = None


class WriteResponse(BaseModel):
    """Response model for online-first writes."""
    status: str  # applied, queued
    record_id: Optional[str] = None
    entry_id: Optional[str] = None
    notification_scheduled: bool = False
    error: Optional[str] = None


class FlushResponse(BaseModel):
    """Response model for queue flushes."""
    domain: str
    synced: int
    remaining: int
    failed_entries: List[str] = []


def get_orchestrator(domain: str) -> SyncOrchestrator:
    orchestrator = services.orchestrators.get(domain)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown queue domain '{domain}'"
        )
    return orchestrator


async def submit_write(domain: str, profile_id: str, operation: str, payload: dict) -> SubmitResult:
    try:
        return await get_orchestrator(domain).submit(profile_id, operation, payload)
    except (UnsupportedOperationError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def to_write_response(result: SubmitResult, record_id: Optional[str] = None) -> WriteResponse:
    return WriteResponse(
        status=result.status,
        record_id=result.remote_id or record_id,
        entry_id=result.entry.entry_id if result.entry else None,
        error=result.error
    )


async def schedule_reminder_notification(reminder_id: str, request: ReminderRequest) -> bool:
    if request.scheduled_at is None:
        return False
    scheduler = services.scheduler
    if request.type == "Medicine":
        scheduled = await scheduler.schedule_medicine_notification(
            reminder_id, request.medicine_name, request.dose, request.scheduled_at
        )
    elif request.type == "Appointment":
        scheduled = await scheduler.schedule_appointment_notification(
            reminder_id, request.doctor_name, request.notes, request.scheduled_at
        )
    else:
        return False
    return scheduled is not None


@app.post("/profiles/{profile_id}/reminders", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def create_reminder(profile_id: str, request: ReminderRequest):
    """
    Create a reminder and arm its local notification.

    The notification is keyed by the remote record id when the write was
    applied, or by the queue entry id when it was queued until a flush of the
    reminder queue moves it to the stored record id.
    """
    result = await submit_write("reminders", profile_id, QueueOperation.CREATE.value, request.model_dump(mode="json"))
    response = to_write_response(result)
    reminder_id = response.record_id or response.entry_id
    response.notification_scheduled = await schedule_reminder_notification(reminder_id, request)
    return response


@app.put("/profiles/{profile_id}/reminders/{reminder_id}", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def update_reminder(profile_id: str, reminder_id: str, request: ReminderRequest):
    """Update a reminder and re-arm its notification."""
    payload = {"reminder_id": reminder_id, **request.model_dump(mode="json")}
    result = await submit_write("reminders", profile_id, QueueOperation.UPDATE.value, payload)
    response = to_write_response(result, record_id=reminder_id)
    services.scheduler.cancel_notification(reminder_id)
    response.notification_scheduled = await schedule_reminder_notification(reminder_id, request)
    return response


@app.delete("/profiles/{profile_id}/reminders/{reminder_id}", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def delete_reminder(profile_id: str, reminder_id: str):
    """Delete a reminder and cancel its notification."""
    result = await submit_write("reminders", profile_id, QueueOperation.DELETE.value, {"reminder_id": reminder_id})
    services.scheduler.cancel_notification(reminder_id)
    return to_write_response(result, record_id=reminder_id)


@app.post("/profiles/{profile_id}/documents", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def upload_document(profile_id: str, request: DocumentRequest):
    """Upload a document, queueing it while offline."""
    result = await submit_write("documents", profile_id, QueueOperation.CREATE.value, request.model_dump(mode="json"))
    return to_write_response(result)


@app.post("/profiles/{profile_id}/appointments", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def create_appointment(profile_id: str, request: AppointmentRequest):
    """Book an appointment, queueing it while offline."""
    result = await submit_write("appointments", profile_id, QueueOperation.CREATE.value, request.model_dump(mode="json"))
    return to_write_response(result)


@app.put("/profiles/{profile_id}/appointments/{appointment_id}", response_model=WriteResponse, status_code=status.HTTP_200_OK)
async def update_appointment(profile_id: str, appointment_id: str, request: AppointmentRequest):
    """Update an appointment, queueing it while offline."""
    payload = {"appointment_id": appointment_id, **request.model_dump(mode="json")}
    result = await submit_write("appointments", profile_id, QueueOperation.UPDATE.value, payload)
    return to_write_response(result, record_id=appointment_id)


@app.get("/queues/{domain}", status_code=status.HTTP_200_OK)
async def list_queue(domain: str, profile_id: Optional[str] = None):
    """List queued entries for a domain, optionally for one profile."""
    entries = get_orchestrator(domain).queue.list_queued(profile_id)
    return {
        "domain": domain,
        "count": len(entries),
        "entries": [entry.to_dict() for entry in entries]
    }


@app.delete("/queues/{domain}/{entry_id}", status_code=status.HTTP_200_OK)
async def remove_queue_entry(domain: str, entry_id: str):
    """Discard one queued entry."""
    result = get_orchestrator(domain).queue.remove(entry_id)
    return {"domain": domain, "entry_id": entry_id, "result": result.value}


@app.post("/queues/{domain}/flush", response_model=FlushResponse, status_code=status.HTTP_200_OK)
async def flush_queue(domain: str, profile_id: Optional[str] = None):
    """
    Drain a domain's queue against the remote store.

    Returns immediately with the backlog if a flush of the same domain is
    already running or the store is unreachable.
    """
    orchestrator = get_orchestrator(domain)
    failed = []

    async def on_processed(entry, remote_id):
        # Queued reminder creates were armed under their entry id.
        if domain == "reminders" and remote_id and entry.operation == QueueOperation.CREATE.value:
            await services.scheduler.reassign_notification(entry.entry_id, remote_id)

    result = await orchestrator.flush(
        profile_id=profile_id,
        on_processed=on_processed,
        on_error=lambda entry, error: failed.append(entry.entry_id)
    )

    return FlushResponse(
        domain=domain,
        synced=result.synced,
        remaining=result.remaining,
        failed_entries=failed
    )


@app.get("/notifications", status_code=status.HTTP_200_OK)
async def list_notifications():
    """Live timers and persisted pending notifications."""
    scheduler = services.scheduler
    return {
        **scheduler.get_debug_status(),
        "pending": [asdict(notification) for notification in scheduler.get_pending_notifications()]
    }


@app.post("/notifications/restore", status_code=status.HTTP_200_OK)
async def restore_notifications():
    """Re-arm notifications persisted before the last restart."""
    restored = await services.scheduler.restore_pending_notifications()
    return {"restored": restored}


@app.post("/notifications/sweep", status_code=status.HTTP_200_OK)
async def sweep_notifications():
    """Drop persisted notifications that can no longer fire."""
    removed = services.scheduler.sweep_stale_notifications()
    return {"removed": removed}


@app.post("/notifications/test", status_code=status.HTTP_200_OK)
async def trigger_test_notification(type: str = "medicine"):
    """Present a sample notification immediately."""
    await services.scheduler.send_test_notification(type)
    return {"sent": True, "type": type}


@app.delete("/notifications/{reminder_id}", status_code=status.HTTP_200_OK)
async def cancel_notification(reminder_id: str):
    cancelled = services.scheduler.cancel_notification(reminder_id)
    return {"reminder_id": reminder_id, "cancelled": cancelled}


@app.delete("/notifications", status_code=status.HTTP_200_OK)
async def cancel_all_notifications():
    cancelled = services.scheduler.cancel_all_notifications()
    return {"cancelled": cancelled}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("SYNC_SERVICE_PORT", 8005))
    uvicorn.run(app, host="0.0.0.0", port=port)
