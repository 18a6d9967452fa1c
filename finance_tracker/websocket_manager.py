# finance_tracker/websocket_manager.py
import asyncio
import logging
from typing import Dict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class AlertManager:
    """
    Tracks one alert socket per user_id and pushes budget alerts to it.
    A newer connection for the same user replaces the older one.
    """

    def __init__(self):
        # user_id -> WebSocket
        self.active: Dict[int, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        async with self._lock:
            old = self.active.get(user_id)
            self.active[user_id] = websocket
        if old is not None:
            try:
                await old.close()
            except RuntimeError:
                # already closed by the client
                pass

    async def disconnect(self, user_id: int, websocket: WebSocket = None):
        async with self._lock:
            if websocket is None or self.active.get(user_id) is websocket:
                self.active.pop(user_id, None)

    def is_connected(self, user_id: int) -> bool:
        return user_id in self.active

    async def send_alert(self, user_id: int, message: str) -> bool:
        """Push an alert; returns False when the user has no live socket."""
        ws = self.active.get(user_id)
        if ws is None:
            return False
        try:
            await ws.send_json({"type": "budget_alert", "message": message})
            return True
        except Exception:
            logger.warning("dropping alert socket for user %s", user_id, exc_info=True)
            await self.disconnect(user_id, ws)
            return False


# single shared manager to import
manager = AlertManager()
