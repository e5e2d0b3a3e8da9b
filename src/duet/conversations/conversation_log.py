"""
conversation_log.py – Estado vivo de un run de conversación.

Única fuente de verdad para el transcript y los indicadores de UI
(thinking / speaking por agente, active). Toda mutación pasa por las
operaciones públicas y emite un evento observable para el WebUI y los tests.

Invariantes que se mantienen por construcción:
- como mucho un agente thinking y uno speaking a la vez
- thinking y speaking del mismo agente nunca ambos True
- al pasar a inactivo todos los flags quedan en False
- los mensajes son append-only durante el run; start() los vacía
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .conversation_utils import generate_message_id
from .types import AGENT_IDS, AgentId, LogListener, Message, Role, other_agent

logger = logging.getLogger(__name__)


class ConversationLog:
    """Transcript + flags de un run, con listeners de eventos."""

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._active = False
        self._thinking: Dict[str, bool] = {a: False for a in AGENT_IDS}
        self._speaking: Dict[str, bool] = {a: False for a in AGENT_IDS}
        # Se incrementa en cada start(): token de cancelación del run
        self._generation = 0
        self._listeners: List[LogListener] = []

    # ──────────────────────────────────────────
    # Lectura
    # ──────────────────────────────────────────

    @property
    def active(self) -> bool:
        return self._active

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def is_thinking(self, agent: AgentId) -> bool:
        return self._thinking[agent]

    def is_speaking(self, agent: AgentId) -> bool:
        return self._speaking[agent]

    def is_current(self, generation: int) -> bool:
        """True si el run `generation` sigue activo (no parado ni reemplazado)."""
        return self._active and generation == self._generation

    def snapshot(self) -> Dict[str, Any]:
        return {
            "active": self._active,
            "generation": self._generation,
            "messages": [m.to_dict() for m in self._messages],
            "thinking": dict(self._thinking),
            "speaking": dict(self._speaking),
        }

    # ──────────────────────────────────────────
    # Listeners
    # ──────────────────────────────────────────

    def subscribe(self, listener: LogListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: LogListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning(
                    "Listener falló procesando evento '%s'",
                    event.get("type"),
                    exc_info=True,
                )

    # ──────────────────────────────────────────
    # Mutaciones
    # ──────────────────────────────────────────

    def append(
        self,
        role: Role,
        content: str,
        agent: Optional[AgentId] = None,
        model: Optional[str] = None,
    ) -> int:
        """Agrega un mensaje con id y timestamp. Devuelve su índice."""
        message = Message(
            id=generate_message_id(),
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc).isoformat(),
            agent=agent,
            model=model,
        )
        self._messages.append(message)
        index = len(self._messages) - 1

        logger.info(
            "💬 [%d] %s%s: %s",
            index,
            role,
            f"/{agent}" if agent else "",
            content[:60],
        )
        self._emit({"type": "message", "index": index, "message": message.to_dict()})
        return index

    def set_thinking(self, agent: AgentId, value: bool) -> None:
        if value:
            self._speaking[agent] = False
            self._thinking[other_agent(agent)] = False
        self._thinking[agent] = value
        logger.debug("thinking %s = %s", agent, value)
        self._emit({"type": "thinking", "agent": agent, "value": value})

    def set_speaking(self, agent: AgentId, value: bool) -> None:
        if value:
            self._thinking[agent] = False
            self._speaking[other_agent(agent)] = False
        self._speaking[agent] = value
        logger.debug("speaking %s = %s", agent, value)
        self._emit({"type": "speaking", "agent": agent, "value": value})

    def start(self) -> int:
        """Vacía el transcript, activa el run y devuelve su generación."""
        self._messages.clear()
        self._reset_flags()
        self._generation += 1
        self._active = True
        logger.info("🎬 Run %d iniciado", self._generation)
        self._emit({"type": "state", "active": True, "generation": self._generation})
        return self._generation

    def stop(self, reason: Optional[str] = None) -> bool:
        """Termina el run.

        El motivo se agrega como mensaje system antes de bajar los flags,
        y solo en la transición active → inactive: un segundo stop() no
        duplica el mensaje. Devuelve True si hubo transición.
        """
        if not self._active:
            logger.debug("stop() con run inactivo, ignorado (%s)", reason)
            return False

        if reason:
            self.append("system", reason)
        self._active = False
        self._reset_flags()
        logger.info("🛑 Run %d terminado: %s", self._generation, reason or "-")
        self._emit({"type": "state", "active": False, "generation": self._generation})
        return True

    def _reset_flags(self) -> None:
        for agent in AGENT_IDS:
            self._thinking[agent] = False
            self._speaking[agent] = False
