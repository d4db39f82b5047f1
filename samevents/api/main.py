import json
import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from samevents.api.routes import auth, calendar, events, venues
from samevents.config.manager import config_manager
from samevents.services.notification_service import NotificationRegistry, get_notifications

# Configure logging
logging.basicConfig(
    level=getattr(logging, str(config_manager.get('development.log_level', 'INFO')).upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sam Hébert Événements API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config_manager.get('app.cors_origins', []),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(events.router)
app.include_router(calendar.router)
app.include_router(venues.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={
        "message": "Invalid request data",
        "errors": jsonable_encoder(exc.errors()),
    })


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    error_message = str(exc)
    logger.error(f"Error processing request {request.url.path}: {error_message}")
    return JSONResponse(status_code=500, content={"detail": error_message})


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, registry: NotificationRegistry = Depends(get_notifications)):
    """Notification channel.

    The client registers with ``{"type": "auth", "userId": ...}`` and may
    send ``{"type": "ping"}`` to keep the connection alive.
    """
    await websocket.accept()
    logger.info("New WebSocket connection")

    try:
        while True:
            data = await websocket.receive_text()
            if not data or not data.strip():
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.error(f"Invalid JSON message: {data}")
                continue

            kind = message.get("type") if isinstance(message, dict) else None
            if kind == 'auth' and message.get('userId'):
                registry.connect(message['userId'], websocket)
                await registry.welcome(message['userId'])
            elif kind == 'ping':
                await websocket.send_json({
                    'type': 'pong',
                    'timestamp': datetime.now(timezone.utc).isoformat(),
                })
            else:
                logger.warning(f"Unknown message type: {kind}")
    except WebSocketDisconnect:
        logger.info("WebSocket connection closed")
    finally:
        registry.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
