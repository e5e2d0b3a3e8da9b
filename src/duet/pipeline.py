"""
pipeline.py – Orquestador principal de duet.

Conecta todos los módulos:
OpenRouter (chat) ─┐
Groq/Edge (TTS) ───┼→ SpeechPlayback → TurnEngine → ConversationSession
TranscriptStore ───┘                                    ↕
                                  DuetWebServer (WebSocket + API + audio)

Sin WebUI corre en modo headless: un único run con la semilla dada y
sin reproducción de audio.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from .conversations.conversation_log import ConversationLog
from .conversations.session import ConversationSession
from .conversations.speech_playback import NullAudioSink, SpeechPlayback
from .conversations.turn_engine import TurnEngine
from .storage import TranscriptStore

if TYPE_CHECKING:
    from .config import DuetConfig
    from .conversations.types import AudioSink, SpeechSynthesizer

logger = logging.getLogger(__name__)


class DuetPipeline:
    """Pipeline principal de duet."""

    def __init__(self, config: DuetConfig) -> None:
        self.config = config
        self.log = ConversationLog()

        # Componentes (se inicializan en load())
        self._llm = None
        self._tts: Optional[SpeechSynthesizer] = None
        self._stt = None
        self._store: Optional[TranscriptStore] = None
        self._web = None
        self.session: Optional[ConversationSession] = None

    # ──────────────────────────────────────────
    # Inicialización
    # ──────────────────────────────────────────

    def load(self) -> None:
        """Carga todos los módulos. Llamar antes de run()."""
        logger.info("═══ Cargando módulos duet ═══")
        t0 = time.perf_counter()

        # LLM (OpenRouter)
        from .llm_openrouter import OpenRouterLLM

        self._llm = OpenRouterLLM(self.config.llm)
        self._llm.load()

        # TTS – seleccionar backend
        from .tts_edge import EdgeTTS

        backend = self.config.tts.backend.lower()
        if backend == "edge":
            self._tts = EdgeTTS(self.config.tts)
            self._tts.load()
        else:
            from .tts_groq import GroqTTS

            self._tts = GroqTTS(self.config.tts)
            try:
                self._tts.load()
            except ValueError as exc:
                # Sin key de Groq la voz sigue disponible vía Edge
                logger.warning("TTS Groq no disponible (%s), usando Edge TTS", exc)
                backend = "edge"
                self._tts = EdgeTTS(self.config.tts)
                self._tts.load()
        logger.info("TTS backend: %s", backend)

        # STT (opcional: solo lo usa el micrófono del WebUI)
        from .stt_groq import GroqSTT

        stt = GroqSTT(self.config.stt)
        try:
            stt.load()
            self._stt = stt
        except ValueError as exc:
            logger.warning("STT desactivado: %s", exc)

        self._store = TranscriptStore(self.config.storage)

        # WebUI (provee el AudioSink del navegador)
        sink: AudioSink
        if self.config.webui.enabled:
            from .web_server import DuetWebServer

            self._web = DuetWebServer(
                log=self.log,
                store=self._store,
                llm=self._llm,
                stt=self._stt,
                host=self.config.webui.host,
                port=self.config.webui.port,
            )
            sink = self._web.audio_sink
        else:
            sink = NullAudioSink()

        playback = SpeechPlayback(
            log=self.log,
            agents=self.config.agents,
            synthesizer=self._tts,
            sink=sink,
            timing=self.config.timing,
            store=self._store,
        )
        engine = TurnEngine(
            log=self.log,
            agents=self.config.agents,
            chat=self._llm,
            playback=playback,
            timing=self.config.timing,
        )
        self.session = ConversationSession(
            log=self.log,
            agents=self.config.agents,
            engine=engine,
            playback=playback,
            store=self._store,
        )
        if self._web is not None:
            self._web.set_session(self.session)

        elapsed = (time.perf_counter() - t0) * 1000
        logger.info("═══ Módulos cargados en %.1f ms ═══", elapsed)

    # ──────────────────────────────────────────
    # Loop principal
    # ──────────────────────────────────────────

    async def run(self) -> None:
        """Sirve el WebUI hasta que se cancele el proceso."""
        if self._web is None:
            raise RuntimeError("WebUI desactivado: usar run_headless()")

        await self._web.start()
        logger.info("🎭 duet listo... (Ctrl+C para detener)")

        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

    async def run_headless(self, direction: str, seed_message: str) -> None:
        """Ejecuta un único run hasta su estado terminal e imprime el transcript."""
        self.log.subscribe(_print_message)
        try:
            await self.session.start(direction, seed_message)
        finally:
            self.log.unsubscribe(_print_message)
            await self.shutdown()

    # ──────────────────────────────────────────
    # Shutdown
    # ──────────────────────────────────────────

    async def shutdown(self) -> None:
        """Apaga todos los componentes limpiamente."""
        logger.info("Apagando duet...")
        if self.session:
            await self.session.shutdown()
        if self._web:
            await self._web.stop()
        logger.info("duet apagado correctamente ✓")


def _print_message(event: dict) -> None:
    if event.get("type") != "message":
        return
    message = event["message"]
    speaker = message.get("agent") or message["role"]
    print(f"[{speaker}] {message['content']}", flush=True)
