"""
stt_groq.py – Speech-to-Text con Groq Whisper.

Transcribe audio grabado en el navegador (para dictar el mensaje
inicial) usando /audio/transcriptions compatible con OpenAI.
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

from .conversations.types import ProviderError, ProviderErrorKind
from .provider_errors import classify

if TYPE_CHECKING:
    from .config import STTConfig

logger = logging.getLogger(__name__)

SERVICE = "Groq STT"


class GroqSTT:
    """Transcriptor de voz usando Groq (whisper-large-v3-turbo)."""

    def __init__(self, config: STTConfig) -> None:
        self.base_url = config.base_url
        self.api_key = config.api_key or os.environ.get("GROQ_API_KEY", "")
        self.model = config.model
        self.response_format = config.response_format
        self._client = None

    def load(self) -> None:
        if not self.api_key:
            raise ValueError(
                "Groq STT requiere API key. "
                "Configúrala en config.yaml (stt.api_key) "
                "o en la variable de entorno GROQ_API_KEY"
            )

        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(
            base_url=self.base_url, api_key=self.api_key, max_retries=0
        )
        logger.info("Groq STT listo (model=%s)", self.model)

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        """Devuelve el texto transcripto. Lanza ProviderError si falla."""
        if self._client is None:
            raise RuntimeError("STT no cargado. Llamar load() primero.")
        if not audio:
            raise ProviderError(ProviderErrorKind.BAD_REQUEST, "Audio file is required")

        t0 = time.perf_counter()
        try:
            result = await self._client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio),
                response_format=self.response_format,
            )
        except Exception as exc:
            error = classify(exc, SERVICE)
            logger.error("Groq STT error (%s): %s", error.kind.value, exc)
            raise error from exc

        text = (getattr(result, "text", None) or "").strip()
        logger.info(
            "STT: '%s' (%.1f ms)", text[:60], (time.perf_counter() - t0) * 1000
        )
        return text
