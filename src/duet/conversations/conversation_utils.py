"""
conversation_utils.py – Helpers compartidos para flujos de conversación.

Funciones stateless usadas por el TurnEngine, SpeechPlayback y la sesión:
ids, estimación de tiempo de lectura, detección del marcador de fin y
construcción del historial que se envía al proveedor de chat.
"""

from __future__ import annotations

import random
import string
import time
import uuid
from typing import Iterable, Optional

from .types import END_MARKER, AgentId, ChatTurn, Message

# Máximo de entradas de historial enviadas al modelo
HISTORY_LIMIT = 10

_BASE36 = string.digits + string.ascii_lowercase


def generate_conversation_id() -> str:
    """Id de conversación: conv_<epoch ms>_<9 chars base36>.

    Solo usa [a-z0-9_], que es lo que acepta el TranscriptStore.
    """
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


def generate_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:12]}"


def estimate_speaking_time(text: str) -> float:
    """Tiempo estimado de lectura en segundos.

    0.4 s por palabra + pausa de 0.05 s por palabra (máx 2 s),
    con un piso de 1.5 s.
    """
    word_count = len(text.split())
    pause = min(2.0, word_count * 0.05)
    return max(1.5, word_count * 0.4 + pause)


def contains_end_marker(text: Optional[str]) -> bool:
    """Búsqueda literal del marcador #END# en la salida cruda del modelo.

    Puede dar falsos positivos si el modelo cita el marcador.
    """
    return bool(text) and END_MARKER in text


def build_history(
    messages: Iterable[Message],
    agent: AgentId,
    names: dict[str, str],
    limit: int = HISTORY_LIMIT,
) -> list[ChatTurn]:
    """Convierte el transcript en historial desde el punto de vista de `agent`.

    Mensajes propios → assistant; del otro agente o del humano → user
    (con el nombre del hablante). Los mensajes system no se envían.
    Devuelve solo las últimas `limit` entradas.
    """
    history: list[ChatTurn] = []
    for msg in messages:
        if msg.role == "system":
            continue
        if msg.agent == agent:
            history.append(ChatTurn(role="assistant", content=msg.content))
        else:
            speaker = names.get(msg.agent, "Human") if msg.agent else "Human"
            history.append(ChatTurn(role="user", content=msg.content, name=speaker))
    if limit <= 0:
        return []
    return history[-limit:]
