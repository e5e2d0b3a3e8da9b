"""
turn_engine.py – Máquina de estados de turnos entre ai1 y ai2.

Un turno:
1. Guard de cancelación
2. Thinking (delay aleatorio en [min, max))
3. Pedido al proveedor de chat (prompt + identidad + últimos 10 mensajes)
4. ¿#END#? → stop "Conversation has ended"
5. Respuesta vacía → error de turno
6. Commit del mensaje assistant
7. Voz (se espera completa antes de seguir)
8. Guard de cancelación
9. Pausa entre turnos
10. ¿Dirección humano→agente y respondió ese agente? → stop "Conversation ended"
11. Siguiente turno para el otro agente

El "token" de cancelación es la generación del run en el ConversationLog,
leída de nuevo después de cada suspensión (sleep, chat, voz, pausa).
Cualquier excepción en 2-7 termina el run con un único mensaje system.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from .conversation_utils import build_history, contains_end_marker
from .types import AgentId, ChatProvider, EmptyResponseError, other_agent

if TYPE_CHECKING:
    from ..config import AgentsConfig, TimingConfig
    from .conversation_log import ConversationLog
    from .speech_playback import SpeechPlayback

logger = logging.getLogger(__name__)

REASON_END_MARKER = "Conversation has ended"
REASON_DIRECTION_DONE = "Conversation ended"

# Direcciones que terminan cuando responde el agente indicado
_SINGLE_REPLY_DIRECTIONS = {
    "human-to-ai1": "ai1",
    "human-to-ai2": "ai2",
}

Sleep = Callable[[float], Awaitable[None]]


def error_reason(exc: BaseException) -> str:
    return f"An error occurred: {exc}. Stopping conversation."


class TurnEngine:
    """Alterna turnos entre agentes hasta que se cumpla una condición de fin."""

    def __init__(
        self,
        *,
        log: ConversationLog,
        agents: AgentsConfig,
        chat: ChatProvider,
        playback: SpeechPlayback,
        timing: TimingConfig,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._log = log
        self._agents = agents
        self._chat = chat
        self._playback = playback
        self._timing = timing
        self._sleep = sleep
        self._rng = rng or random.Random()

    def thinking_delay(self) -> float:
        """Delay uniforme en [thinking_min_s, thinking_max_s)."""
        lo = self._timing.thinking_min_s
        hi = self._timing.thinking_max_s
        return lo + self._rng.random() * max(0.0, hi - lo)

    async def run(self, agent: AgentId, incoming: str, direction: str) -> None:
        """Ejecuta turnos desde `agent` hasta que el run termine.

        Se ata a la generación activa al entrar: si el run se para (o se
        reemplaza por otro), el loop sale en la siguiente suspensión.
        """
        generation = self._log.generation
        turn = 0

        while self._log.is_current(generation):
            turn += 1
            response = await self._run_turn(generation, agent, incoming, turn)
            if response is None:
                return

            if not self._log.is_current(generation):
                return

            await self._sleep(self._timing.inter_turn_pause_s)
            if not self._log.is_current(generation):
                return

            if _SINGLE_REPLY_DIRECTIONS.get(direction) == agent:
                logger.info("Dirección %s completa tras respuesta de %s", direction, agent)
                self._log.stop(REASON_DIRECTION_DONE)
                return

            agent, incoming = other_agent(agent), response

    async def _run_turn(
        self, generation: int, agent: AgentId, incoming: str, turn: int
    ) -> str | None:
        """Pasos 2-7 de un turno. Devuelve la respuesta o None si el run terminó."""
        try:
            self._log.set_thinking(agent, True)
            await self._sleep(self.thinking_delay())
            if not self._log.is_current(generation):
                self._clear_thinking(generation, agent)
                return None

            t0 = time.perf_counter()
            response = await self._request(agent, incoming)
            if not self._log.is_current(generation):
                logger.info(
                    "Respuesta de %s descartada: el run se detuvo durante la espera",
                    agent,
                )
                return None
            logger.info(
                "🤖 %s turno %d: %d chars (%.1f ms)",
                agent,
                turn,
                len(response or ""),
                (time.perf_counter() - t0) * 1000,
            )

            if contains_end_marker(response):
                logger.info("%s respondió con el marcador de fin", agent)
                self._log.set_thinking(agent, False)
                self._log.stop(REASON_END_MARKER)
                return None

            self._log.set_thinking(agent, False)

            if not response or not response.strip():
                raise EmptyResponseError(f"Empty response from {agent}")

            config = self._agents.get(agent)
            index = self._log.append(
                "assistant", response, agent=agent, model=config.model
            )

            await self._playback.speak(agent, response, index)
            return response

        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Error en turno de %s: %s", agent, exc, exc_info=True)
            if self._log.is_current(generation):
                self._log.set_thinking(agent, False)
                self._log.set_speaking(agent, False)
                self._log.stop(error_reason(exc))
            return None

    async def _request(self, agent: AgentId, incoming: str) -> str:
        config = self._agents.get(agent)
        partner = self._agents.get(other_agent(agent))
        names = {"ai1": self._agents.ai1.name, "ai2": self._agents.ai2.name}

        # El mensaje entrante es el último del log: el historial va sin él
        prior = self._log.messages[:-1]
        history = build_history(prior, agent, names)

        return await self._chat.complete(config, partner.name, history, incoming)

    def _clear_thinking(self, generation: int, agent: AgentId) -> None:
        if self._log.generation == generation:
            self._log.set_thinking(agent, False)
