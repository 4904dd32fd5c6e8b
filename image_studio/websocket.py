"""Job notifications pushed to the browser over /ws."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

JobEvent = Literal[
    "task_started",
    "task_complete",
    "task_failed",
    "task_cancelled",
    "queue_saturated",
]


class NotificationHub:
    """Fan-out of job events to every connected browser tab."""

    def __init__(self) -> None:
        self._sockets: set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self._sockets)

    def attach(self, websocket: WebSocket) -> None:
        self._sockets.add(websocket)

    def detach(self, websocket: WebSocket) -> None:
        self._sockets.discard(websocket)

    async def publish(self, event: JobEvent, data: dict[str, Any]) -> int:
        """
        Send ``{"type": event, "data": data}`` to the sockets connected when
        the call starts. Sockets that fail to receive it are detached.
        Returns the number of deliveries.
        """
        payload = {"type": event, "data": data}
        delivered = 0
        for websocket in list(self._sockets):
            try:
                await websocket.send_json(payload)
            except Exception as exc:
                logger.debug("Detaching websocket after failed %s delivery: %s", event, exc)
                self.detach(websocket)
                continue
            delivered += 1
        return delivered


hub = NotificationHub()


async def broadcast(event_type: JobEvent, data: dict[str, Any]) -> None:
    await hub.publish(event_type, data)


@router.websocket("/ws")
async def job_events(websocket: WebSocket):
    await websocket.accept()
    hub.attach(websocket)
    try:
        # Incoming messages are ignored; reading notices the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.detach(websocket)
