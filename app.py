from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from routers.channels import channels_router
from backend import redis_backend
from errors import CoreError
from hub import RealtimeHub
from registry import Connection
import json
import asyncio
from constants import CORS_ORIGINS, LOG_LEVEL, LOG_FILE
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def pump_outbox(websocket: WebSocket, connection: Connection):
    """Write queued events to the socket in the order they were queued."""
    while True:
        event, payload = await connection.outbox.get()
        await websocket.send_text(json.dumps({"event": event, "data": payload}))


def create_app(store=None) -> FastAPI:
    app = FastAPI()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(channels_router)

    # One hub per process, handed to every handler through app.state
    app.state.hub = RealtimeHub(store if store is not None else redis_backend)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, token: str = None):
        """Realtime endpoint. Frames are JSON `{"event": name, "data": payload}`.

        Query parameters:
        - token: Optional; when given the connection starts with that user's identity
        """
        hub: RealtimeHub = websocket.app.state.hub
        identity = None

        if token:
            try:
                identity = await hub.messages.authenticate(token)
            except CoreError as e:
                logger.info(f"WebSocket connection rejected: {e.message}")
                await websocket.close(code=1008, reason=e.message)
                return
            except Exception as e:
                logger.error(f"Error authenticating WebSocket connection: {e}", exc_info=True)
                await websocket.close(code=1011, reason="Server error")
                return

        await websocket.accept()
        connection = await hub.connect(identity)
        connection_id = connection.connection_id
        writer = asyncio.create_task(pump_outbox(websocket, connection))

        try:
            message_count = 0
            while True:
                data = await websocket.receive_text()
                message_count += 1
                logger.debug(f"Received frame #{message_count} from connection {connection_id}")

                try:
                    frame = json.loads(data)
                except json.JSONDecodeError:
                    await hub.send_error(connection_id, "Invalid JSON")
                    continue
                if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                    await hub.send_error(connection_id, "Frame must be an object with an 'event' name")
                    continue

                await hub.dispatch(connection_id, frame["event"], frame.get("data"))

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
        finally:
            writer.cancel()
            # Cleanup must finish even if this task is being cancelled
            await asyncio.shield(hub.disconnect(connection_id))
            try:
                await writer
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Writer for connection {connection_id} ended with error: {e}")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
