"""
tts_groq.py – Text-to-Speech con Groq (modelo playai-tts).

Groq expone /audio/speech compatible con OpenAI, así que se usa el
mismo paquete `openai` apuntando a https://api.groq.com/openai/v1.
Devuelve los bytes del audio (mp3 por defecto) tal cual: la
reproducción la hace el navegador.

La key se lee de config o de la variable de entorno GROQ_API_KEY.
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

from .conversations.types import ProviderError, ProviderErrorKind
from .provider_errors import classify

if TYPE_CHECKING:
    from .config import TTSConfig

logger = logging.getLogger(__name__)

SERVICE = "Groq TTS"

VOICES = {
    "Arista-PlayAI": "Arista (Female)",
    "Angelo-PlayAI": "Angelo (Male)",
    "Nova-PlayAI": "Nova (Female)",
    "Atlas-PlayAI": "Atlas (Male)",
    "Indigo-PlayAI": "Indigo (Neutral)",
}


class GroqTTS:
    """Sintetizador de voz usando Groq."""

    def __init__(self, config: TTSConfig) -> None:
        self.base_url = config.base_url
        self.api_key = config.api_key or os.environ.get("GROQ_API_KEY", "")
        self.model = config.model
        self.response_format = config.response_format
        self._client = None

    def load(self) -> None:
        """Inicializa el cliente AsyncOpenAI apuntando a Groq."""
        if not self.api_key:
            raise ValueError(
                "Groq TTS requiere API key. "
                "Configúrala en config.yaml (tts.api_key) "
                "o en la variable de entorno GROQ_API_KEY"
            )
        if not self.api_key.startswith("gsk_"):
            logger.warning(
                "La API key de Groq no empieza con 'gsk_' (%s...)", self.api_key[:4]
            )

        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(
            base_url=self.base_url, api_key=self.api_key, max_retries=0
        )
        logger.info("Groq TTS listo (model=%s, format=%s)", self.model, self.response_format)

    async def synthesize(self, voice: str, text: str) -> bytes:
        """Sintetiza `text` con `voice`. Lanza ProviderError si falla."""
        if self._client is None:
            raise RuntimeError("TTS no cargado. Llamar load() primero.")
        if not voice or not text.strip():
            raise ProviderError(
                ProviderErrorKind.BAD_REQUEST, "Missing required fields (voice or input)"
            )

        t0 = time.perf_counter()
        try:
            async with self._client.audio.speech.with_streaming_response.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format=self.response_format,
            ) as response:
                audio = await response.read()
        except Exception as exc:
            error = classify(exc, SERVICE)
            logger.error("Groq TTS error (%s): %s", error.kind.value, exc)
            raise error from exc

        logger.info(
            "TTS '%s...' → %d KB (%.1f ms)",
            text[:40],
            len(audio) // 1024,
            (time.perf_counter() - t0) * 1000,
        )
        return audio
