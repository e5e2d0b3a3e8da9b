"""
browser_audio.py – AudioSink que reproduce en el navegador del operador.

play() publica el mp3 (base64) por WebSocket con un request_id y espera
el "playback-complete" del navegador vía MessageHandler. El navegador
manda ese mismo mensaje con `error` si el audio no se pudo reproducir.
El techo de tiempo lo aplica SpeechPlayback desde afuera.
"""

from __future__ import annotations

import base64
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from .message_handler import MessageHandler, message_handler
from .types import AgentId, PlaybackError

logger = logging.getLogger(__name__)

CHANNEL = "webui"
ACK_TYPE = "playback-complete"


class BrowserAudioSink:
    """Un slot de reproducción por agente, servido por el WebUI."""

    def __init__(
        self,
        publish: Callable[[Dict[str, Any]], None],
        listener_count: Callable[[], int],
        handler: Optional[MessageHandler] = None,
        channel: str = CHANNEL,
    ) -> None:
        self._publish = publish
        self._listener_count = listener_count
        self._handler = handler or message_handler
        self._channel = channel
        # agent → request_id del audio en curso
        self._pending: Dict[str, str] = {}

    async def play(self, agent: AgentId, audio: bytes, message_index: int) -> None:
        if self._listener_count() == 0:
            raise PlaybackError("No hay clientes WebUI conectados para reproducir audio")

        request_id = uuid.uuid4().hex
        self._pending[agent] = request_id
        self._publish({
            "type": "audio",
            "agent": agent,
            "index": message_index,
            "request_id": request_id,
            "mime": "audio/mpeg",
            "audio": base64.b64encode(audio).decode("ascii"),
        })

        try:
            reply = await self._handler.wait_for_response(
                self._channel, ACK_TYPE, request_id=request_id
            )
        finally:
            if self._pending.get(agent) == request_id:
                del self._pending[agent]

        if reply is None:
            raise PlaybackError("Canal de audio cerrado antes de terminar")
        if reply.get("error"):
            raise PlaybackError(f"El navegador no pudo reproducir: {reply['error']}")

    async def stop(self, agent: AgentId) -> None:
        self._publish({"type": "audio-stop", "agent": agent})
        request_id = self._pending.pop(agent, None)
        if request_id is not None:
            # Libera al waiter sin esperar la confirmación del navegador
            self._handler.handle_message(
                self._channel,
                {"type": ACK_TYPE, "request_id": request_id, "stopped": True},
            )
