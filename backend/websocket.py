"""
WebSocket handler bridging viewer connections to the broadcast service.
"""

import json
import logging
import uuid
from typing import Dict

from fastapi import WebSocket, WebSocketDisconnect

from backend.broadcast import BroadcastService
from backend.metrics import WEBSOCKET_CONNECTIONS, MESSAGES_REJECTED
from contracts.constants import WS_MESSAGE_TYPE_SET_BOUNDS
from contracts.validation import validate_set_bounds_message

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections; connect/disconnect drive join/leave."""

    def __init__(self, service: BroadcastService):
        self.service = service
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept new WebSocket connection and join it to the broadcast."""
        await websocket.accept()
        subscriber_id = uuid.uuid4().hex
        self.active_connections[subscriber_id] = websocket
        WEBSOCKET_CONNECTIONS.set(len(self.active_connections))
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

        await self.service.join(subscriber_id, websocket.send_json)
        return subscriber_id

    def disconnect(self, subscriber_id: str):
        """Remove WebSocket connection."""
        self.active_connections.pop(subscriber_id, None)
        WEBSOCKET_CONNECTIONS.set(len(self.active_connections))
        self.service.leave(subscriber_id)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def handle_message(self, subscriber_id: str, text: str) -> None:
        """Process one inbound message; bad input is logged and dropped."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON from {subscriber_id}: {e}")
            MESSAGES_REJECTED.labels(reason="invalid_json").inc()
            return

        if not isinstance(data, dict) or data.get("type") != WS_MESSAGE_TYPE_SET_BOUNDS:
            logger.warning(f"Unexpected message from {subscriber_id}: {text[:200]}")
            MESSAGES_REJECTED.labels(reason="unknown_type").inc()
            return

        is_valid, message, error = validate_set_bounds_message(data)
        if not is_valid:
            logger.warning(f"Invalid set_bounds from {subscriber_id}: {error}")
            MESSAGES_REJECTED.labels(reason="invalid_bounds").inc()
            return

        await self.service.set_bounds(subscriber_id, message.to_bounds())

    async def handle_client(self, websocket: WebSocket):
        """Handle a WebSocket client connection."""
        subscriber_id = await self.connect(websocket)

        try:
            while True:
                text = await websocket.receive_text()
                await self.handle_message(subscriber_id, text)

        except WebSocketDisconnect:
            logger.info("Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            self.disconnect(subscriber_id)
