"""
tts_edge.py – Text-to-Speech con Microsoft Edge TTS (edge-tts).

Backend alternativo que usa el servicio online de Microsoft Edge.
No requiere API key: útil cuando no hay key de Groq. La voz del agente
debe ser un nombre de voz de Edge (ej. "en-US-AriaNeural"); si se deja
una voz de Groq se usa la voz por defecto.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from .conversations.types import ProviderError, ProviderErrorKind

if TYPE_CHECKING:
    from .config import TTSConfig

logger = logging.getLogger(__name__)

DEFAULT_EDGE_VOICE = "en-US-AriaNeural"


class EdgeTTS:
    """Motor TTS usando Microsoft Edge TTS (edge-tts)."""

    def __init__(self, config: TTSConfig) -> None:
        self.rate = config.edge_rate
        self.pitch = config.edge_pitch

    def load(self) -> None:
        """Verifica que edge-tts está instalado."""
        try:
            import edge_tts  # noqa: F401
        except ImportError:
            raise ImportError(
                "edge-tts no instalado. Instalar con: pip install edge-tts"
            )
        logger.info("Edge TTS listo (rate=%s, pitch=%s)", self.rate, self.pitch)

    @staticmethod
    def resolve_voice(voice: str) -> str:
        # Las voces de Edge tienen forma xx-XX-NombreNeural
        if voice and voice.endswith("Neural"):
            return voice
        return DEFAULT_EDGE_VOICE

    async def synthesize(self, voice: str, text: str) -> bytes:
        """Sintetiza texto a bytes MP3 usando edge-tts."""
        import edge_tts

        t0 = time.perf_counter()
        communicate = edge_tts.Communicate(
            text,
            voice=self.resolve_voice(voice),
            rate=self.rate,
            pitch=self.pitch,
        )

        mp3_chunks: list[bytes] = []
        try:
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    mp3_chunks.append(chunk["data"])
        except Exception as exc:
            logger.error("Edge TTS error: %s", exc)
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE, f"Edge TTS error: {exc}"
            ) from exc

        audio = b"".join(mp3_chunks)
        if not audio:
            raise ProviderError(
                ProviderErrorKind.UNKNOWN,
                f"Edge TTS: respuesta vacía para '{text[:40]}...'",
            )

        logger.info(
            "TTS edge '%s...' → %d bytes (%.1f ms)",
            text[:40],
            len(audio),
            (time.perf_counter() - t0) * 1000,
        )
        return audio
