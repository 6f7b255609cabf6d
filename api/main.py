"""
FastAPI application for the estimate view tracker.

This application provides:
1. Tracking entry points that record views (/view/..., /pixel/...)
2. Statistics endpoints (/api/views/..., /api/estimates)
3. Registration endpoints for estimates, push devices and the contractor
4. The in-app notification feed (/api/notifications)

Run with:
    uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.

Authentication, rate limiting and CORS are expected to be handled in front of
this application.
"""

import base64
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.channels import EmailNotifier, LoggingEmailChannel, LoggingPushChannel, PushNotifier
from core.config import Settings, configure_logging
from core.data_store import DataStore
from core.models import (
    ContractorRegistration,
    DeviceRegistration,
    EstimateRegistration,
    ViewMetadata,
    utcnow,
)
from core.templates import render_view_page
from pipeline.dispatcher import NotificationDispatcher
from pipeline.queries import EstimateListing, NotificationFeed, QueryService, ViewStats
from pipeline.recorder import EventRecorder

# Configure logging
configure_logging(os.getenv("TRACKER_LOG_LEVEL", "INFO"))

logger = logging.getLogger("api")

# 1x1 transparent GIF
PIXEL_GIF = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class TrackerComponents:
    """Everything the routes need, built around one DataStore."""
    data_store: DataStore
    recorder: EventRecorder
    dispatcher: NotificationDispatcher
    queries: QueryService

    def close(self) -> None:
        """Finish pending deliveries, then write and stop the store."""
        self.dispatcher.close()
        self.data_store.close()


def build_components(
    settings: Settings,
    push_channel: Optional[PushNotifier] = None,
    email_channel: Optional[EmailNotifier] = None,
    clock: Callable = utcnow,
) -> TrackerComponents:
    """
    Load the store and wire the pipeline around it.

    The logging channel adapters are used for any channel that is enabled in
    settings but not passed in.
    """
    data_store = DataStore(settings.data_file)
    data_store.load()
    data_store.start()

    if push_channel is None and settings.push_enabled:
        push_channel = LoggingPushChannel()
    if email_channel is None and settings.email_enabled:
        email_channel = LoggingEmailChannel()

    return TrackerComponents(
        data_store=data_store,
        recorder=EventRecorder(data_store, clock=clock),
        dispatcher=NotificationDispatcher(
            data_store,
            push_channel=push_channel,
            email_channel=email_channel,
            clock=clock,
        ),
        queries=QueryService(data_store, ip_privacy=settings.ip_privacy, ip_salt=settings.ip_salt),
    )


# Module-level instance, replaced in tests via reset_api_state()
_components: Optional[TrackerComponents] = None


def get_components() -> TrackerComponents:
    """Get the tracker components, building them from the environment on first use."""
    global _components
    if _components is None:
        _components = build_components(Settings.from_env())
    return _components


def reset_api_state(components: Optional[TrackerComponents] = None) -> None:
    """Replace the tracker components (for testing)."""
    global _components
    _components = components


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load state on startup; flush and stop the writer on shutdown."""
    components = get_components()
    logger.info(f"Starting Estimate Tracker (data file: {components.data_store.path})")
    yield
    logger.info("Shutting down, flushing state")
    components.close()


app = FastAPI(
    title="Estimate Tracker",
    description="Records estimate views and notifies the contractor on first view.",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes get a JSON error; everything else uses the default handler."""
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"error": "Not found"})
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error for {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# =============================================================================
# Helpers
# =============================================================================

def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _track(
    tracking_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    components: TrackerComponents,
) -> bool:
    """Record a view and schedule notifications if it was the first one."""
    metadata = ViewMetadata(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )
    is_first_view = components.recorder.record_view(tracking_id, metadata)
    if is_first_view:
        estimate = components.data_store.get_estimate(tracking_id)
        background_tasks.add_task(components.dispatcher.dispatch, tracking_id, estimate)
    return is_first_view


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "estimate-tracker", "timestamp": utcnow()}


# =============================================================================
# Tracking entry points
# =============================================================================

@app.get("/view/{tracking_id}", response_class=HTMLResponse, tags=["Tracking"])
def view_estimate(
    tracking_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    components: TrackerComponents = Depends(get_components),
):
    """Record a link open and show the confirmation page."""
    _track(tracking_id, request, background_tasks, components)
    return HTMLResponse(render_view_page(tracking_id))


@app.get("/pixel/{tracking_id}.gif", tags=["Tracking"])
def tracking_pixel(
    tracking_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    components: TrackerComponents = Depends(get_components),
):
    """Record an email open and return a 1x1 transparent GIF."""
    _track(tracking_id, request, background_tasks, components)
    return Response(content=PIXEL_GIF, media_type="image/gif", headers=NO_CACHE_HEADERS)


# =============================================================================
# Statistics
# =============================================================================

@app.get("/api/views/{tracking_id}", response_model=ViewStats, tags=["Statistics"])
def get_view_stats(tracking_id: str, components: TrackerComponents = Depends(get_components)):
    """View statistics for a tracking id (IPs redacted)."""
    return components.queries.get_view_stats(tracking_id)


@app.get("/api/estimates", response_model=EstimateListing, tags=["Statistics"])
def list_estimates(components: TrackerComponents = Depends(get_components)):
    """The 100 most recently created estimates with view counts."""
    return components.queries.list_estimates()


# =============================================================================
# Registration
# =============================================================================

@app.post("/api/register/{tracking_id}", tags=["Registration"])
def register_estimate(
    tracking_id: str,
    registration: Optional[EstimateRegistration] = None,
    components: TrackerComponents = Depends(get_components),
):
    """Register a tracking id. Optional; ids are created on first view anyway."""
    estimate = components.recorder.register_estimate(tracking_id, registration)
    return {"success": True, "trackingId": tracking_id, "estimate": estimate}


@app.post("/api/devices", tags=["Registration"])
def register_device(
    registration: DeviceRegistration,
    components: TrackerComponents = Depends(get_components),
):
    """Register a push device. Re-registering a token replaces it."""
    device = components.recorder.register_device(registration)
    return {"success": True, "device": device}


@app.get("/api/devices", tags=["Registration"])
def list_devices(components: TrackerComponents = Depends(get_components)):
    return {"devices": components.queries.list_devices()}


@app.post("/api/contractor", tags=["Registration"])
def register_contractor(
    registration: ContractorRegistration,
    components: TrackerComponents = Depends(get_components),
):
    """Register the contractor who receives email notifications."""
    contractor = components.recorder.register_contractor(registration)
    return {"success": True, "contractor": contractor}


@app.get("/api/contractor", tags=["Registration"])
def get_contractor(components: TrackerComponents = Depends(get_components)):
    return {"contractor": components.queries.get_contractor()}


# =============================================================================
# Notifications
# =============================================================================

@app.get("/api/notifications", response_model=NotificationFeed, tags=["Notifications"])
def list_notifications(components: TrackerComponents = Depends(get_components)):
    """The in-app notification feed, newest first."""
    return components.queries.list_notifications()


@app.post("/api/notifications/read-all", tags=["Notifications"])
def mark_all_notifications_read(components: TrackerComponents = Depends(get_components)):
    updated = components.data_store.mark_all_notifications_read()
    return {"success": True, "updated": updated}


@app.post("/api/notifications/{notification_id}/read", tags=["Notifications"])
def mark_notification_read(
    notification_id: str,
    components: TrackerComponents = Depends(get_components),
):
    try:
        notification = components.data_store.mark_notification_read(notification_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return {"success": True, "notification": notification}
