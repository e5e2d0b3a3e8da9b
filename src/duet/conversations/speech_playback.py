"""
speech_playback.py – Voz de un turno: síntesis + reproducción con tiempo acotado.

Flujo de speak():
    texto → tts_filter → SpeechSynthesizer (bytes mp3)
          → guarda asset message_{index}.mp3 (best-effort)
          → AudioSink.play() ─┬─ termina / falla      → resolve
                              └─ supera el techo      → sink.stop() → resolve

El techo es el tiempo estimado de lectura más un margen fijo. Si la
síntesis falla, la conversación sigue: speaking vuelve a False y se
espera un retardo fijo antes de devolver el control.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from ..tts_filter import tts_filter
from .conversation_utils import estimate_speaking_time
from .types import AGENT_IDS, AgentId, AudioSink, SpeechSynthesizer

if TYPE_CHECKING:
    from ..config import AgentsConfig, TimingConfig
    from ..storage import TranscriptStore
    from .conversation_log import ConversationLog

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class NullAudioSink:
    """Sink sin salida (modo headless): el asset se guarda pero no suena."""

    async def play(self, agent: AgentId, audio: bytes, message_index: int) -> None:
        logger.debug("Audio %d de %s descartado (sin sink)", message_index, agent)

    async def stop(self, agent: AgentId) -> None:
        return None


class SpeechPlayback:
    """Driver de audio por agente: un slot de reproducción por agente."""

    def __init__(
        self,
        *,
        log: ConversationLog,
        agents: AgentsConfig,
        synthesizer: SpeechSynthesizer,
        sink: AudioSink,
        timing: TimingConfig,
        store: Optional[TranscriptStore] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._log = log
        self._agents = agents
        self._synthesizer = synthesizer
        self._sink = sink
        self._timing = timing
        self._store = store
        self._sleep = sleep
        self._busy: set[str] = set()

        # Lo fija la sesión en cada start() para guardar los assets
        self.conversation_id: Optional[str] = None
        # True cuando al menos un turno del run se reprodujo completo
        self.has_audio = False

    def is_busy(self, agent: AgentId) -> bool:
        return agent in self._busy

    def ceiling_for(self, text: str) -> float:
        return estimate_speaking_time(text) + self._timing.speech_grace_s

    async def speak(self, agent: AgentId, text: str, message_index: int) -> None:
        """Reproduce `text` con la voz de `agent`. Nunca propaga errores del proveedor."""
        config = self._agents.get(agent)
        if not config.tts.enabled:
            logger.debug("TTS desactivado para %s, sin voz", agent)
            return

        if agent in self._busy:
            logger.warning(
                "speak() concurrente para %s (mensaje %d): el slot ya está ocupado",
                agent,
                message_index,
            )

        # El run al que pertenece este audio
        generation = self._log.generation
        self._busy.add(agent)
        self._log.set_speaking(agent, True)
        try:
            spoken = tts_filter(text) or text
            t0 = time.perf_counter()
            try:
                audio = await self._synthesizer.synthesize(config.tts.voice, spoken)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "TTS falló para %s (mensaje %d): %s. Continuando sin audio.",
                    agent,
                    message_index,
                    exc,
                )
                self._log.set_speaking(agent, False)
                await self._sleep(self._timing.speech_fallback_s)
                return

            if not self._log.is_current(generation):
                logger.info(
                    "Audio de %s (mensaje %d) descartado: el run se detuvo durante la síntesis",
                    agent,
                    message_index,
                )
                return

            logger.info(
                "🔊 TTS %s mensaje %d: %d bytes (%.1f ms)",
                agent,
                message_index,
                len(audio),
                (time.perf_counter() - t0) * 1000,
            )
            self._save_asset(message_index, audio)
            await self._play_bounded(agent, audio, message_index, text)
        finally:
            self._busy.discard(agent)
            self._log.set_speaking(agent, False)

    async def _play_bounded(
        self, agent: AgentId, audio: bytes, message_index: int, text: str
    ) -> None:
        ceiling = self.ceiling_for(text)
        try:
            await asyncio.wait_for(
                self._sink.play(agent, audio, message_index), ceiling
            )
            self.has_audio = True
        except asyncio.TimeoutError:
            logger.warning(
                "Reproducción de %s superó %.1fs, cortando audio", agent, ceiling
            )
            await self._stop_sink(agent)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Error reproduciendo audio de %s: %s", agent, exc)

    def _save_asset(self, message_index: int, audio: bytes) -> None:
        if self._store is None or not self.conversation_id:
            return
        try:
            self._store.save_audio(self.conversation_id, message_index, audio)
        except Exception as exc:
            # El audio igual se reproduce aunque no se pueda guardar
            logger.warning("No se pudo guardar audio %d: %s", message_index, exc)

    async def _stop_sink(self, agent: AgentId) -> None:
        try:
            await self._sink.stop(agent)
        except Exception as exc:
            logger.debug("sink.stop(%s) falló: %s", agent, exc)

    async def stop_all(self) -> None:
        """Corta el audio de ambos agentes (stop del usuario)."""
        for agent in AGENT_IDS:
            await self._stop_sink(agent)
