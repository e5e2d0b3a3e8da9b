"""
tts_filter.py – Limpia el texto de un turno antes de sintetizarlo.

Los modelos de chat devuelven markdown, emojis y acotaciones (*sonríe*)
que no deberían leerse en voz alta. El filtro solo afecta lo que va al
TTS: el transcript guarda siempre el texto original.
"""

from __future__ import annotations

import logging
import re
import unicodedata

logger = logging.getLogger(__name__)

# [texto](url) → texto
_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
# ```bloques de código```
_MD_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
# Encabezados markdown y viñetas al inicio de línea
_MD_LINE_PREFIX = re.compile(r"^\s*(#{1,6}\s+|[-*+]\s+|>\s+)", re.MULTILINE)
# *acción*, **negrita**, _itálica_ usada como acotación
_ASTERISK_ASIDE = re.compile(r"\*+[^*]*?\*+")


def tts_filter(text: str) -> str:
    """Devuelve el texto listo para el sintetizador (puede quedar vacío)."""
    if not text or not text.strip():
        return ""

    result = _MD_CODE_BLOCK.sub(" ", text)
    result = _MD_LINK.sub(r"\1", result)
    result = _MD_LINE_PREFIX.sub("", result)
    result = result.replace("`", "")
    result = _ASTERISK_ASIDE.sub(" ", result)

    for left, right in ("()", "[]", "<>"):
        result = _strip_enclosed(result, left, right)

    result = _keep_pronounceable(result)
    result = re.sub(r"\s+", " ", result).strip()

    if result != text:
        logger.debug("TTS filter: '%s' → '%s'", text[:60], result[:60])
    return result


def _strip_enclosed(text: str, left: str, right: str) -> str:
    """Quita el contenido entre `left` y `right`, respetando anidamiento."""
    out: list[str] = []
    depth = 0
    for char in text:
        if char == left:
            depth += 1
        elif char == right and depth > 0:
            depth -= 1
        elif depth == 0:
            out.append(char)
    return "".join(out)


def _keep_pronounceable(text: str) -> str:
    """Conserva letras, números, puntuación y espacios (descarta emojis)."""
    normalized = unicodedata.normalize("NFKC", text)
    return "".join(
        c
        for c in normalized
        if c.isspace() or unicodedata.category(c)[0] in ("L", "N", "P")
    )
