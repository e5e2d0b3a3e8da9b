"""
session.py – Entry/exit points de un run de conversación.

ConversationSession valida y arranca un run (reset del log, sender/receiver
según la dirección, mensaje semilla, voz de la semilla si la envía un agente)
y delega el resto al TurnEngine. stop() es idempotente y seguro en cualquier
momento: la operación en curso termina pero su continuación ve el run
inactivo y se detiene.

También arma el documento de transcript que se comparte (config completa
de ambos agentes + mensajes) y lo persiste en el TranscriptStore.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from .conversation_utils import generate_conversation_id
from .types import (
    DIRECTIONS,
    AgentId,
    ConversationValidationError,
    ShareReference,
)

if TYPE_CHECKING:
    from ..config import AgentsConfig
    from ..storage import TranscriptStore
    from .conversation_log import ConversationLog
    from .speech_playback import SpeechPlayback
    from .turn_engine import TurnEngine

logger = logging.getLogger(__name__)

REASON_USER_STOP = "Conversation stopped"

# dirección → (sender, receiver)
_ROUTES: Dict[str, Tuple[str, AgentId]] = {
    "human-to-ai1": ("human", "ai1"),
    "human-to-ai2": ("human", "ai2"),
    "ai1-to-ai2": ("ai1", "ai2"),
    "ai2-to-ai1": ("ai2", "ai1"),
}


class ConversationSession:
    """Controlador de ciclo de vida de un run."""

    def __init__(
        self,
        *,
        log: ConversationLog,
        agents: AgentsConfig,
        engine: TurnEngine,
        playback: SpeechPlayback,
        store: Optional[TranscriptStore] = None,
    ) -> None:
        self._log = log
        self._agents = agents
        self._engine = engine
        self._playback = playback
        self._store = store
        self._task: Optional[asyncio.Task] = None

        self.conversation_id: str = generate_conversation_id()
        self.direction: str = "ai1-to-ai2"

    @property
    def log(self) -> ConversationLog:
        return self._log

    @property
    def is_busy(self) -> bool:
        """True mientras el task de un run lanzado con launch() sigue vivo."""
        return self._task is not None and not self._task.done()

    # ──────────────────────────────────────────
    # Start
    # ──────────────────────────────────────────

    def validate(self, direction: str, seed_message: str) -> None:
        """Chequea precondiciones sin tocar estado."""
        if not self._agents.ai1.model or not self._agents.ai2.model:
            raise ConversationValidationError(
                "Please select models for both AI agents in the settings."
            )
        if direction not in DIRECTIONS:
            raise ConversationValidationError(f"Unknown direction: {direction!r}")
        if not seed_message or not seed_message.strip():
            raise ConversationValidationError("Please provide a starting message.")
        if self._log.active or self.is_busy:
            raise ConversationValidationError("A conversation is already running.")

    async def start(self, direction: str, seed_message: str) -> None:
        """Arranca un run y lo ejecuta hasta un estado terminal."""
        self.validate(direction, seed_message)
        await self._run(direction, seed_message.strip())

    def launch(self, direction: str, seed_message: str) -> asyncio.Task:
        """Valida de forma sincrónica y despacha el run como asyncio.Task."""
        self.validate(direction, seed_message)
        task = asyncio.create_task(self._run(direction, seed_message.strip()))
        self._task = task
        task.add_done_callback(self._on_task_done)
        return task

    async def _run(self, direction: str, seed: str) -> None:
        sender, receiver = _ROUTES[direction]

        self.conversation_id = generate_conversation_id()
        self.direction = direction
        self._playback.conversation_id = self.conversation_id
        self._playback.has_audio = False

        generation = self._log.start()
        logger.info(
            "Iniciando conversación %s (%s → %s)",
            self.conversation_id,
            sender,
            receiver,
        )

        if sender == "human":
            self._log.append("human", seed)
        else:
            agent_cfg = self._agents.get(sender)
            index = self._log.append(
                "assistant", seed, agent=sender, model=agent_cfg.model
            )
            await self._playback.speak(sender, seed, index)
            if not self._log.is_current(generation):
                return

        try:
            await self._engine.run(receiver, seed, direction)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # El engine no deja escapar errores de turno; esto es un bug
            logger.error("Error inesperado en la conversación: %s", exc, exc_info=True)
            if self._log.is_current(generation):
                self._log.stop(f"Conversation failed to start: {exc}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled():
            exc = task.exception()
            if exc:
                logger.error("Conversación terminó con error: %s", exc)

    # ──────────────────────────────────────────
    # Stop
    # ──────────────────────────────────────────

    async def stop(self, reason: str = REASON_USER_STOP) -> bool:
        """Marca el run inactivo con `reason` y corta el audio en curso.

        Idempotente: si ya estaba inactivo no agrega otro mensaje.
        """
        stopped = self._log.stop(reason)
        if stopped:
            await self._playback.stop_all()
        return stopped

    async def shutdown(self) -> None:
        """Cancela el task en curso. Solo para el cierre del proceso."""
        self._log.stop(REASON_USER_STOP)
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

    # ──────────────────────────────────────────
    # Share
    # ──────────────────────────────────────────

    def build_document(self) -> Dict[str, Any]:
        """Documento de transcript para el viewer de solo lectura."""
        ai1, ai2 = self._agents.ai1, self._agents.ai2
        return {
            "id": self.conversation_id,
            "settings": {
                "messageDirection": self.direction,
                "models": {"ai1": ai1.model, "ai2": ai2.model},
                "names": {"ai1": ai1.name, "ai2": ai2.name},
                "prompts": {"ai1": ai1.prompt, "ai2": ai2.prompt},
                "tts": {
                    "ai1": {"enabled": ai1.tts.enabled, "voice": ai1.tts.voice},
                    "ai2": {"enabled": ai2.tts.enabled, "voice": ai2.tts.voice},
                },
                "parameters": {
                    "ai1": {"maxTokens": ai1.max_tokens, "temperature": ai1.temperature},
                    "ai2": {"maxTokens": ai2.max_tokens, "temperature": ai2.temperature},
                },
            },
            "messages": [m.to_dict() for m in self._log.messages],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

    def share(self) -> ShareReference:
        """Persiste el transcript actual y devuelve la referencia compartible."""
        if self._store is None:
            raise RuntimeError("No hay TranscriptStore configurado")
        if len(self._log) == 0:
            raise ConversationValidationError("No conversation to share")
        return self._store.persist(self.conversation_id, self.build_document())
