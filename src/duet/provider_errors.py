"""
provider_errors.py – Clasifica errores del cliente `openai` en ProviderError.

OpenRouter y Groq exponen APIs compatibles con OpenAI, así que los tres
clientes (chat, TTS, STT) comparten la misma taxonomía:
401/403 → unauthorized, 429 → rate_limited, 400/404/422 → bad_request,
5xx o red → unavailable, resto → unknown.
"""

from __future__ import annotations

import openai

from .conversations.types import ProviderError, ProviderErrorKind

_MESSAGES = {
    ProviderErrorKind.UNAUTHORIZED: "Invalid {service} API key. Please check your API key in settings.",
    ProviderErrorKind.RATE_LIMITED: "{service} rate limit exceeded. Please try again later.",
    ProviderErrorKind.BAD_REQUEST: "Invalid request parameters for {service}: {detail}",
    ProviderErrorKind.UNAVAILABLE: "{service} service temporarily unavailable. Please try again later.",
    ProviderErrorKind.UNKNOWN: "{service} API error: {detail}",
}


def kind_for_status(status: int) -> ProviderErrorKind:
    if status in (401, 403):
        return ProviderErrorKind.UNAUTHORIZED
    if status == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status in (400, 404, 422):
        return ProviderErrorKind.BAD_REQUEST
    if status >= 500:
        return ProviderErrorKind.UNAVAILABLE
    return ProviderErrorKind.UNKNOWN


def classify(exc: Exception, service: str) -> ProviderError:
    """Convierte una excepción del SDK en ProviderError con mensaje legible."""
    if isinstance(exc, ProviderError):
        return exc

    status = None
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        kind = kind_for_status(status)
    elif isinstance(exc, openai.APIConnectionError):
        kind = ProviderErrorKind.UNAVAILABLE
    else:
        kind = ProviderErrorKind.UNKNOWN

    message = _MESSAGES[kind].format(service=service, detail=str(exc)[:300])
    return ProviderError(kind, message, status=status)
