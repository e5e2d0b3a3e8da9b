"""
conversations – Motor de turnos entre dos agentes.

Maneja quién habla cuándo: thinking → respuesta → voz → pausa → siguiente
agente, con cancelación inmediata desde el WebUI, detección de #END#
y un único mensaje system al terminar cada run.
"""

from .browser_audio import BrowserAudioSink
from .conversation_log import ConversationLog
from .message_handler import message_handler
from .session import ConversationSession
from .speech_playback import SpeechPlayback
from .turn_engine import TurnEngine
from .types import (
    ConversationValidationError,
    Message,
    ProviderError,
    ProviderErrorKind,
)

__all__ = [
    "BrowserAudioSink",
    "ConversationLog",
    "ConversationSession",
    "ConversationValidationError",
    "Message",
    "ProviderError",
    "ProviderErrorKind",
    "SpeechPlayback",
    "TurnEngine",
    "message_handler",
]
