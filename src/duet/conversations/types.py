"""
types.py – Tipos compartidos para el sistema de turnos de conversación.

Define type aliases, dataclasses, protocolos de los proveedores externos
y las excepciones usadas por todos los módulos del paquete conversations/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
)

# ── Type aliases ──────────────────────────────

AgentId = Literal["ai1", "ai2"]
Role = Literal["system", "human", "assistant"]
Direction = Literal["human-to-ai1", "human-to-ai2", "ai1-to-ai2", "ai2-to-ai1"]

AGENT_IDS: tuple[AgentId, AgentId] = ("ai1", "ai2")
DIRECTIONS: tuple[str, ...] = (
    "human-to-ai1",
    "human-to-ai2",
    "ai1-to-ai2",
    "ai2-to-ai1",
)

# Token reservado con el que un agente pide terminar la conversación.
END_MARKER = "#END#"

# Listener de eventos del ConversationLog (recibe un dict JSON-ready).
LogListener = Callable[[Dict[str, Any]], None]


def other_agent(agent: AgentId) -> AgentId:
    return "ai2" if agent == "ai1" else "ai1"


# ── Dataclasses ───────────────────────────────


@dataclass(frozen=True)
class Message:
    """Mensaje inmutable del transcript. Su índice en el log es el turno."""

    id: str
    role: Role
    content: str
    timestamp: str
    agent: Optional[AgentId] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.agent is not None:
            data["agent"] = self.agent
        if self.model is not None:
            data["model"] = self.model
        return data


@dataclass(frozen=True)
class ChatTurn:
    """Entrada de historial enviada al proveedor de chat."""

    role: Literal["user", "assistant"]
    content: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ShareReference:
    url: str
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "expires_at": self.expires_at.isoformat()}


# ── Errores ───────────────────────────────────


class ProviderErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class ProviderError(RuntimeError):
    """Fallo clasificado de un proveedor externo (chat, TTS, STT)."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status


class EmptyResponseError(RuntimeError):
    """El modelo devolvió texto vacío: se trata igual que un fallo de proveedor."""


class ConversationValidationError(ValueError):
    """Precondición de start() no cumplida. El run nunca arranca."""


class PlaybackError(RuntimeError):
    """El backend de audio no pudo reproducir (sin oyentes, error del navegador)."""


# ── Protocolos de colaboradores externos ──────


class ChatProvider(Protocol):
    async def complete(
        self,
        agent: Any,
        partner_name: str,
        history: List[ChatTurn],
        text: str,
    ) -> str: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, voice: str, text: str) -> bytes: ...


class AudioSink(Protocol):
    async def play(self, agent: AgentId, audio: bytes, message_index: int) -> None: ...

    async def stop(self, agent: AgentId) -> None: ...
