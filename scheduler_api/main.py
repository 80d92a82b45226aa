from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

from fastapi import Depends, FastAPI, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from .booking import BookingService
from .config import Settings, configure_logging, settings as default_settings
from .db.repository import Store, build_store
from .errors import BookingError, Forbidden
from .hub import NotificationHub
from .schemas import Appointment, AppointmentUpdate, Day, Interviewer

logger = logging.getLogger(__name__)

PING = "ping"


def get_booking(request: Request) -> BookingService:
    return request.app.state.booking


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    hub = NotificationHub(queue_size=settings.ws_queue_size)
    booking = BookingService(
        store or build_store(settings),
        hub,
        production=settings.is_production,
        store_timeout=settings.store_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Scheduler API starting in %s mode", settings.environment)
        yield
        await hub.close()

    app = FastAPI(title="Interview Scheduler API", lifespan=lifespan)
    app.state.settings = settings
    app.state.hub = hub
    app.state.booking = booking

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        if isinstance(exc, Forbidden):
            logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
            return JSONResponse(status_code=404, content={"error": "Not found"})
        logger.warning(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc,
        )
        return JSONResponse(status_code=500, content={"error": "Unable to complete request"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception during %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/days", response_model=list[Day])
    async def list_days(booking: BookingService = Depends(get_booking)) -> list[Day]:
        return await booking.list_days()

    @app.get("/api/appointments", response_model=dict[int, Appointment])
    async def list_appointments(
        booking: BookingService = Depends(get_booking),
    ) -> dict[int, Appointment]:
        return await booking.list_appointments()

    @app.put("/api/appointments/{appointment_id}", status_code=204)
    async def put_appointment(
        appointment_id: int,
        update: AppointmentUpdate,
        booking: BookingService = Depends(get_booking),
    ) -> Response:
        await booking.upsert_appointment(appointment_id, update.interview)
        return Response(status_code=204)

    @app.delete("/api/appointments/{appointment_id}", status_code=204)
    async def delete_appointment(
        appointment_id: int,
        booking: BookingService = Depends(get_booking),
    ) -> Response:
        await booking.delete_appointment(appointment_id)
        return Response(status_code=204)

    @app.get("/api/interviewers", response_model=dict[int, Interviewer])
    async def list_interviewers(
        booking: BookingService = Depends(get_booking),
    ) -> dict[int, Interviewer]:
        return await booking.list_interviewers()

    @app.get("/api/debug/reset")
    async def debug_reset(booking: BookingService = Depends(get_booking)) -> dict:
        await booking.reset_to_seed()
        return {"status": "reset"}

    async def viewer_events(websocket: WebSocket) -> None:
        await websocket.accept()
        connection = hub.create_connection(websocket)
        await hub.register(connection)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug("Viewer socket closed with code %s", message.get("code"))
                    break
                if message.get("text") == PING:
                    await hub.handle_ping(connection)
                else:
                    frame = message.get("text")
                    if frame is None:
                        frame = message.get("bytes")
                    logger.debug("Ignoring viewer frame %.64r", frame)
        finally:
            await hub.unregister(connection)

    app.add_api_websocket_route("/", viewer_events)
    app.add_api_websocket_route("/ws", viewer_events)

    return app


app = create_app()
