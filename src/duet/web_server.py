"""
web_server.py – WebUI + API HTTP para controlar la conversación.

Provee:
- WebSocket /ws: start / stop / share / playback-complete desde el
  navegador, y broadcast ordenado de los eventos del ConversationLog y
  del audio de cada turno
- API REST: estado, modelos de OpenRouter, STT, compartir transcript,
  listado de audio, viewer de solo lectura
- Archivos estáticos del WebUI y assets de audio guardados
"""

from __future__ import annotations

import asyncio
import json
import logging
from http import HTTPStatus
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from aiohttp import web

from .conversations.browser_audio import CHANNEL, BrowserAudioSink
from .conversations.message_handler import MessageHandler, message_handler
from .conversations.types import (
    ConversationValidationError,
    ProviderError,
    ProviderErrorKind,
)
from .storage import InvalidConversationId

if TYPE_CHECKING:
    from .conversations.conversation_log import ConversationLog
    from .conversations.session import ConversationSession
    from .llm_openrouter import OpenRouterLLM
    from .storage import TranscriptStore
    from .stt_groq import GroqSTT

logger = logging.getLogger(__name__)

WEBUI_DIR = Path(__file__).parent / "webui"

_STATUS_BY_KIND = {
    ProviderErrorKind.UNAUTHORIZED: HTTPStatus.UNAUTHORIZED,
    ProviderErrorKind.RATE_LIMITED: HTTPStatus.TOO_MANY_REQUESTS,
    ProviderErrorKind.BAD_REQUEST: HTTPStatus.BAD_REQUEST,
    ProviderErrorKind.UNAVAILABLE: HTTPStatus.BAD_GATEWAY,
    ProviderErrorKind.UNKNOWN: HTTPStatus.INTERNAL_SERVER_ERROR,
}


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


class DuetWebServer:
    """Servidor web embebido con WebSocket para control en tiempo real."""

    def __init__(
        self,
        *,
        log: ConversationLog,
        store: TranscriptStore,
        llm: Optional[OpenRouterLLM] = None,
        stt: Optional[GroqSTT] = None,
        host: str = "127.0.0.1",
        port: int = 8080,
        handler: Optional[MessageHandler] = None,
    ) -> None:
        self.host = host
        self.port = port
        self._log = log
        self._store = store
        self._llm = llm
        self._stt = stt
        self._handler = handler or message_handler
        self._session: ConversationSession | None = None

        self._app = web.Application()
        self._ws_clients: list[web.WebSocketResponse] = []
        self._runner: web.AppRunner | None = None
        self._event_queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task] = None

        # El sink se pasa a SpeechPlayback antes de que exista la sesión
        self.audio_sink = BrowserAudioSink(
            self.publish, lambda: len(self._ws_clients), handler=self._handler
        )
        log.subscribe(self.publish)

        # Routes
        self._app.router.add_get("/ws", self._ws_handler)
        self._app.router.add_get("/api/state", self._api_state)
        self._app.router.add_get("/api/models", self._api_models)
        self._app.router.add_post("/api/stt", self._api_stt)
        self._app.router.add_post("/api/conversations/share", self._api_share)
        self._app.router.add_get("/api/conversations/audio", self._api_audio_list)
        self._app.router.add_get("/share/{conversation_id}", self._share_view)
        self._app.router.add_get(
            "/conversations/{conversation_id}/audio/{filename}", self._audio_file
        )
        if WEBUI_DIR.is_dir():
            self._app.router.add_get("/", self._serve_index)
            self._app.router.add_static("/static", WEBUI_DIR, show_index=False)

        self._app.on_startup.append(self._on_startup)
        self._app.on_cleanup.append(self._on_cleanup)

    def set_session(self, session: ConversationSession) -> None:
        """Registra la sesión que reciben los comandos del WebUI."""
        self._session = session

    @property
    def session(self) -> ConversationSession:
        if self._session is None:
            raise RuntimeError("WebUI sin sesión registrada")
        return self._session

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def client_count(self) -> int:
        return len(self._ws_clients)

    # ──────────────────────────────────────────
    # Eventos → WebSocket (en orden)
    # ──────────────────────────────────────────

    def publish(self, event: dict[str, Any]) -> None:
        """Encola un evento para todos los clientes (sincrónico, no bloquea)."""
        self._event_queue.put_nowait(event)

    async def _process_event_queue(self) -> None:
        """Sender loop: un único consumidor garantiza el orden de los eventos."""
        while True:
            event = await self._event_queue.get()
            try:
                await self.broadcast(event)
            except Exception:
                logger.warning("Error enviando evento '%s'", event.get("type"), exc_info=True)
            finally:
                self._event_queue.task_done()

    async def broadcast(self, event: dict[str, Any]) -> None:
        """Envía un evento a todos los clientes WebSocket."""
        if not self._ws_clients:
            return

        message = json.dumps(event, ensure_ascii=False)
        dead: list[web.WebSocketResponse] = []

        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                dead.append(ws)

        for ws in dead:
            if ws in self._ws_clients:
                self._ws_clients.remove(ws)

    async def _on_startup(self, app: web.Application) -> None:
        self._sender_task = asyncio.create_task(self._process_event_queue())

    async def _on_cleanup(self, app: web.Application) -> None:
        if self._session is not None:
            await self._session.shutdown()
        self._handler.cleanup_channel(CHANNEL)
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._sender_task and not self._sender_task.done():
            self._sender_task.cancel()
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass
        self._sender_task = None

    # ──────────────────────────────────────────
    # WebSocket
    # ──────────────────────────────────────────

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._ws_clients.append(ws)
        logger.info("WebUI: client connected (%d total)", len(self._ws_clients))

        # Estado inicial
        await ws.send_json({"type": "snapshot", "data": self.state()})

        try:
            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("WebUI: invalid JSON from client")
                        continue
                    await self._handle_command(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.error("WebUI: ws error %s", ws.exception())
        finally:
            if ws in self._ws_clients:
                self._ws_clients.remove(ws)
            logger.info(
                "WebUI: client disconnected (%d remaining)", len(self._ws_clients)
            )

        return ws

    async def _handle_command(
        self, ws: web.WebSocketResponse, data: dict[str, Any]
    ) -> None:
        """Enruta mensajes del WebUI: control del run o sincronización de audio."""
        msg_type = data.get("type")

        if msg_type == "playback-complete":
            self._handler.handle_message(CHANNEL, data)
            return

        if msg_type == "start":
            try:
                self.session.launch(
                    data.get("direction", ""), data.get("message", "")
                )
            except ConversationValidationError as exc:
                logger.info("Start rechazado: %s", exc)
                await ws.send_json({"type": "error", "message": str(exc)})
            return

        if msg_type == "stop":
            await self.session.stop()
            return

        if msg_type == "share":
            try:
                ref = self.session.share()
            except ConversationValidationError as exc:
                await ws.send_json({"type": "error", "message": str(exc)})
                return
            await ws.send_json({"type": "shared", **ref.to_dict()})
            return

        logger.debug("WebUI: mensaje desconocido %s", msg_type)

    # ──────────────────────────────────────────
    # HTTP handlers
    # ──────────────────────────────────────────

    def state(self) -> dict[str, Any]:
        state: dict[str, Any] = self._log.snapshot()
        session = self._session
        if session is not None:
            state.update({
                "conversation_id": session.conversation_id,
                "direction": session.direction,
                "has_audio": self._store_has_audio(session.conversation_id),
            })
        return state

    def _store_has_audio(self, conversation_id: str) -> bool:
        try:
            return bool(self._store.list_audio(conversation_id))
        except InvalidConversationId:
            return False

    async def _serve_index(self, request: web.Request) -> web.FileResponse:
        return web.FileResponse(WEBUI_DIR / "index.html")

    async def _api_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.state())

    async def _api_models(self, request: web.Request) -> web.Response:
        if self._llm is None:
            return _error("OpenRouter no configurado", HTTPStatus.SERVICE_UNAVAILABLE)
        try:
            models = await self._llm.list_models()
        except ProviderError as exc:
            return _error(str(exc), _STATUS_BY_KIND[exc.kind])
        return web.json_response({"data": models})

    async def _api_stt(self, request: web.Request) -> web.Response:
        if self._stt is None:
            return _error("Groq STT no configurado", HTTPStatus.SERVICE_UNAVAILABLE)

        audio: bytes = b""
        filename = "audio.webm"
        if request.content_type.startswith("multipart/"):
            reader = await request.multipart()
            async for part in reader:
                if part.name == "audio":
                    filename = part.filename or filename
                    audio = await part.read()
                    break
        if not audio:
            return _error("Audio file is required", HTTPStatus.BAD_REQUEST)

        try:
            text = await self._stt.transcribe(audio, filename)
        except ProviderError as exc:
            return _error(str(exc), _STATUS_BY_KIND[exc.kind])
        return web.json_response({"success": True, "text": text})

    async def _api_share(self, request: web.Request) -> web.Response:
        """Comparte el run actual, o un documento enviado por el cliente."""
        body: dict[str, Any] = {}
        if request.can_read_body:
            try:
                body = await request.json()
            except json.JSONDecodeError:
                return _error("Invalid JSON in request body.", HTTPStatus.BAD_REQUEST)
            if not isinstance(body, dict):
                return _error("Invalid JSON in request body.", HTTPStatus.BAD_REQUEST)

        try:
            if body.get("conversation_id") or body.get("data"):
                if not body.get("conversation_id") or not body.get("data"):
                    return _error("Missing conversation ID or data", HTTPStatus.BAD_REQUEST)
                if not isinstance(body["data"], dict):
                    return _error("Invalid conversation data", HTTPStatus.BAD_REQUEST)
                ref =self._store.persist(body["conversation_id"], body["data"])
            else:
                ref = self.session.share()
        except (InvalidConversationId, ConversationValidationError) as exc:
            return _error(str(exc), HTTPStatus.BAD_REQUEST)

        return web.json_response({
            "success": True,
            "shareUrl": ref.url,
            "expiresAt": ref.expires_at.isoformat(),
        })

    async def _api_audio_list(self, request: web.Request) -> web.Response:
        conversation_id = request.query.get("conversation_id", "")
        if not conversation_id:
            return _error("Missing conversation ID", HTTPStatus.BAD_REQUEST)
        try:
            files = self._store.list_audio(conversation_id)
        except InvalidConversationId as exc:
            return _error(str(exc), HTTPStatus.BAD_REQUEST)
        return web.json_response({"success": True, "audioFiles": files})

    async def _share_view(self, request: web.Request) -> web.Response:
        conversation_id = request.match_info["conversation_id"]
        try:
            document = self._store.load(conversation_id)
            audio_files = self._store.list_audio(conversation_id)
        except InvalidConversationId:
            document = None
        if document is None:
            return _error("Conversation not found or expired", HTTPStatus.NOT_FOUND)
        return web.json_response({
            "conversation": document,
            "has_audio": bool(audio_files),
            "audio_files": audio_files,
        })

    async def _audio_file(self, request: web.Request) -> web.StreamResponse:
        try:
            path = self._store.audio_path(
                request.match_info["conversation_id"], request.match_info["filename"]
            )
        except InvalidConversationId:
            path = None
        if path is None:
            return web.Response(status=HTTPStatus.NOT_FOUND, text="Not found")
        return web.FileResponse(path, headers={"Content-Type": "audio/mpeg"})

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    async def start(self) -> None:
        """Inicia el servidor HTTP."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("WebUI: http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Detiene el servidor (dispara on_cleanup)."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("WebUI: stopped")
