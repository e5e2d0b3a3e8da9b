"""
message_handler.py – Sincronización frontend ↔ backend sobre WebSocket.

Implementa un patrón request-response usando asyncio.Event:
el backend puede esperar a que el navegador envíe un mensaje
específico (ej. "playback-complete" de un audio) sin polling.

Uso típico:
    # Backend: bloquea hasta que el navegador confirme
    await message_handler.wait_for_response(
        "webui", "playback-complete", request_id=rid
    )

    # Cuando llega el mensaje del navegador
    message_handler.handle_message("webui", {"type": "playback-complete", "request_id": rid})
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Tipo clave para identificar una respuesta esperada: (response_type, request_id)
_ResponseKey = Tuple[str, Optional[str]]


class MessageHandler:
    """Sincronizador de mensajes request-response por canal."""

    def __init__(self) -> None:
        # channel → {(response_type, request_id) → Event}
        self._response_events: Dict[str, Dict[_ResponseKey, asyncio.Event]] = (
            defaultdict(dict)
        )
        # channel → {(response_type, request_id) → message_data}
        self._response_data: Dict[str, Dict[_ResponseKey, Any]] = defaultdict(dict)

    async def wait_for_response(
        self,
        channel: str,
        response_type: str,
        request_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Any]:
        """Bloquea hasta recibir un mensaje del tipo esperado.

        Returns:
            El mensaje recibido, o None si hay timeout o el canal se limpia.
        """
        event = asyncio.Event()
        key: _ResponseKey = (response_type, request_id)
        self._response_events[channel][key] = event

        logger.debug(
            "Esperando '%s' (%s) en %s (timeout=%s)",
            response_type,
            request_id,
            channel,
            timeout,
        )

        try:
            if timeout is not None:
                await asyncio.wait_for(event.wait(), timeout)
            else:
                await event.wait()
            return self._response_data[channel].pop(key, None)
        except asyncio.TimeoutError:
            logger.warning("Timeout esperando '%s' en %s", response_type, channel)
            return None
        finally:
            self._response_events[channel].pop(key, None)
            self._response_data[channel].pop(key, None)

    def handle_message(self, channel: str, message: dict) -> bool:
        """Desbloquea al waiter de este mensaje. True si había alguien esperando."""
        msg_type = message.get("type")
        if not msg_type:
            return False

        key: _ResponseKey = (msg_type, message.get("request_id"))
        event = self._response_events.get(channel, {}).get(key)
        if event is None:
            return False

        self._response_data[channel][key] = message
        event.set()
        logger.debug("'%s' recibido en %s, waiter desbloqueado", msg_type, channel)
        return True

    def cleanup_channel(self, channel: str) -> None:
        """Desbloquea todos los waiters del canal (retornarán None)."""
        events = self._response_events.pop(channel, None)
        self._response_data.pop(channel, None)
        if not events:
            return
        for event in events.values():
            event.set()
        logger.info("Cleanup: %d waiters desbloqueados en %s", len(events), channel)

    @property
    def active_waiters(self) -> int:
        """Número total de waiters activos (para diagnóstico)."""
        return sum(len(events) for events in self._response_events.values())


# Singleton: importar esta instancia desde cualquier módulo.
message_handler = MessageHandler()
