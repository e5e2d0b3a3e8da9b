"""
llm_openrouter.py – Respuestas de chat vía OpenRouter (API OpenAI-compatible).

OpenRouter unifica acceso a múltiples LLMs (OpenAI, Anthropic, Mistral,
Llama, etc.) bajo una sola API compatible con OpenAI:
https://openrouter.ai/api/v1

Cada agente elige su propio modelo; este cliente arma los mensajes
(instrucción fija de #END#, prompt del agente + identidad, historial,
turno entrante) y devuelve el texto de la primera choice.

La key se lee de config o de la variable de entorno OPENROUTER_API_KEY.
"""

from __future__ import annotations

import logging
import os
import re
import time
from typing import TYPE_CHECKING, Any

from .conversations.types import (
    END_MARKER,
    ChatTurn,
    ProviderError,
    ProviderErrorKind,
)
from .provider_errors import classify

if TYPE_CHECKING:
    from .config import AgentConfig, LLMConfig

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
SERVICE = "OpenRouter"

FIXED_SYSTEM_MESSAGE = (
    "As for emojis use UTF-8 emoji, now, track entire conversation and if you "
    "decide this is final end and no need to respond further, USE #END# ONLY "
    "AND ONLY THEN if all conversation should be ended. DONT ADD #END# to every "
    "single message, add end only conversation indicates good bye, see you etc!"
)

# El campo `name` de OpenAI solo acepta [A-Za-z0-9_-]
_NAME_SAFE = re.compile(r"[^A-Za-z0-9_-]")


def _safe_name(name: str) -> str:
    return _NAME_SAFE.sub("_", name)[:64] or "speaker"


class OpenRouterLLM:
    """Proveedor de chat usando OpenRouter (cliente async de openai)."""

    def __init__(self, config: LLMConfig) -> None:
        self.base_url = config.base_url or OPENROUTER_BASE_URL
        self.api_key = config.api_key or os.environ.get("OPENROUTER_API_KEY", "")
        self.top_p = config.top_p
        self.timeout = config.timeout
        self.site_url = config.site_url
        self.title = config.title
        self._client = None

    def load(self) -> None:
        """Inicializa el cliente AsyncOpenAI apuntando a OpenRouter."""
        if not self.api_key:
            raise ValueError(
                "OpenRouter requiere API key. "
                "Configúrala en config.yaml (llm.api_key) "
                "o en la variable de entorno OPENROUTER_API_KEY"
            )
        if not self.api_key.startswith("sk-or"):
            logger.warning(
                "La API key de OpenRouter no empieza con 'sk-or' (%s...)",
                self.api_key[:6],
            )

        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout,
            max_retries=0,  # Sin reintentos: el operador es el retry
            default_headers={
                "HTTP-Referer": self.site_url,
                "X-Title": self.title,
            },
        )
        logger.info("OpenRouter conectado – url: %s", self.base_url)

    def build_messages(
        self,
        agent: AgentConfig,
        partner_name: str,
        history: list[ChatTurn],
        text: str,
    ) -> list[dict[str, Any]]:
        """Construye la lista de mensajes para la API de chat."""
        identity = (
            f"{agent.prompt} You are {agent.name} and you are talking to "
            f"{partner_name}. Keep your responses concise and engaging."
        )
        messages: list[dict[str, Any]] = [{"role": "system", "content": identity}]

        for turn in history:
            entry: dict[str, Any] = {"role": turn.role, "content": turn.content}
            if turn.name:
                entry["name"] = _safe_name(turn.name)
            messages.append(entry)

        messages.append(
            {"role": "user", "content": text, "name": _safe_name(partner_name)}
        )

        # Instrucción de fin, salvo que el prompt del agente ya la traiga
        has_marker = any(
            m["role"] == "system" and END_MARKER in m["content"] for m in messages
        )
        if not has_marker:
            messages.insert(0, {"role": "system", "content": FIXED_SYSTEM_MESSAGE})
        return messages

    async def complete(
        self,
        agent: AgentConfig,
        partner_name: str,
        history: list[ChatTurn],
        text: str,
    ) -> str:
        """Pide una respuesta para `agent`. Lanza ProviderError si falla."""
        if self._client is None:
            raise RuntimeError(
                "Cliente OpenRouter no inicializado. Llamar load() primero."
            )

        messages = self.build_messages(agent, partner_name, history, text)
        logger.debug(
            "Chat request: model=%s, %d mensajes", agent.model, len(messages)
        )

        t0 = time.perf_counter()
        try:
            completion = await self._client.chat.completions.create(
                model=agent.model,
                messages=messages,
                max_tokens=agent.max_tokens,
                temperature=agent.temperature,
                top_p=self.top_p,
            )
        except Exception as exc:
            error = classify(exc, SERVICE)
            logger.error("OpenRouter error (%s): %s", error.kind.value, exc)
            raise error from exc

        if not completion.choices or completion.choices[0].message is None:
            raise ProviderError(
                ProviderErrorKind.UNKNOWN,
                "Invalid response format from OpenRouter API",
            )

        content = (completion.choices[0].message.content or "").strip()
        logger.info(
            "LLM %s: %d chars (%.1f ms)",
            agent.model,
            len(content),
            (time.perf_counter() - t0) * 1000,
        )
        return content

    async def list_models(self) -> list[dict[str, Any]]:
        """Modelos disponibles en OpenRouter, ordenados por id."""
        if self._client is None:
            raise RuntimeError(
                "Cliente OpenRouter no inicializado. Llamar load() primero."
            )
        try:
            page = await self._client.models.list()
        except Exception as exc:
            raise classify(exc, SERVICE) from exc

        models = [
            {"id": m.id, "name": getattr(m, "name", None) or m.id}
            for m in page.data
        ]
        return sorted(models, key=lambda m: m["id"])
