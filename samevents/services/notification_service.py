from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationRegistry:
    """Open WebSocket connections keyed by user id.

    Only touched from the event loop, so no locking is needed.
    """

    def __init__(self):
        self.connections: Dict[str, List[WebSocket]] = {}

    def connect(self, user_id: str, websocket: WebSocket):
        """Register ``websocket`` for ``user_id``; a socket is listed at most once."""
        if websocket in self.connections.get(user_id, []):
            return
        # Re-authenticating as someone else moves the socket
        self.disconnect(websocket)
        self.connections.setdefault(user_id, []).append(websocket)
        logger.info(f"User {user_id} connected via WebSocket")

    def disconnect(self, websocket: WebSocket):
        for user_id, sockets in list(self.connections.items()):
            if websocket in sockets:
                sockets.remove(websocket)
                if not sockets:
                    del self.connections[user_id]
                logger.info(f"Removed WebSocket connection for user {user_id}")
                return

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is not None:
            return len(self.connections.get(user_id, []))
        return sum(len(sockets) for sockets in self.connections.values())

    def _payload(self, kind: str, title: str, message: str, user_id: Optional[str],
                 data: Optional[Dict[str, Any]] = None) -> str:
        notification = {
            'type': kind,
            'title': title,
            'message': message,
            'userId': user_id,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        if data is not None:
            notification['data'] = data
        return json.dumps(notification, default=str)

    async def _send(self, websocket: WebSocket, message: str) -> bool:
        try:
            await websocket.send_text(message)
            return True
        except Exception as e:
            logger.error(f"Error sending message to client: {e}")
            self.disconnect(websocket)
            return False

    async def send_to_user(self, user_id: str, kind: str, title: str, message: str,
                           data: Optional[Dict[str, Any]] = None) -> int:
        """Send to every socket of ``user_id``; returns how many got it"""
        sockets = list(self.connections.get(user_id, []))
        if not sockets:
            logger.debug(f"No WebSocket connection for user {user_id}")
            return 0

        payload = self._payload(kind, title, message, user_id, data)
        delivered = 0
        for websocket in sockets:
            if await self._send(websocket, payload):
                delivered += 1
        logger.info(f"Notification sent to user {user_id}: {title}")
        return delivered

    async def broadcast(self, kind: str, title: str, message: str,
                        data: Optional[Dict[str, Any]] = None) -> int:
        payload = self._payload(kind, title, message, None, data)
        delivered = 0
        for sockets in list(self.connections.values()):
            for websocket in list(sockets):
                if await self._send(websocket, payload):
                    delivered += 1
        logger.info(f"Notification broadcast to all users: {title}")
        return delivered

    async def welcome(self, user_id: str) -> int:
        return await self.send_to_user(
            user_id, 'welcome',
            'Howdy, Cowboy !',
            'Connexion établie avec succès au ranch des notifications',
        )

    async def notify_event_created(self, user_id: str, event_title: str,
                                   event_data: Optional[Dict[str, Any]] = None) -> int:
        return await self.send_to_user(
            user_id, 'event_created',
            'Nouvel Événement Créé !',
            f'"{event_title}" a été ajouté au ranch',
            event_data,
        )

    async def notify_event_updated(self, user_id: str, event_title: str,
                                   event_data: Optional[Dict[str, Any]] = None) -> int:
        return await self.send_to_user(
            user_id, 'event_updated',
            'Événement Mis à Jour',
            f'"{event_title}" a été modifié',
            event_data,
        )

    async def notify_event_deleted(self, user_id: str, event_title: str) -> int:
        return await self.send_to_user(
            user_id, 'event_deleted',
            'Événement Supprimé',
            f'"{event_title}" a quitté le ranch',
        )

    async def notify_calendar_synced(self, user_id: str, calendar_name: str, event_count: int) -> int:
        return await self.send_to_user(
            user_id, 'calendar_synced',
            'Calendrier Synchronisé',
            f'{event_count} événements synchronisés avec {calendar_name}',
            {'calendarName': calendar_name, 'eventCount': event_count},
        )


notification_registry = NotificationRegistry()


def get_notifications() -> NotificationRegistry:
    """FastAPI dependency for the notification registry"""
    return notification_registry
