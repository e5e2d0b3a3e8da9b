"""
storage.py – Persistencia en disco de transcripts compartidos y su audio.

Layout:
    <conversations_dir>/<id>/conversation.json
    <conversations_dir>/<id>/audio/message_<index>.mp3
    <data_dir>/shared_conversations.json     ← índice con expiración

Un transcript compartido vence a los `share_days` días (30 por defecto).
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .conversations.types import ShareReference

if TYPE_CHECKING:
    from .config import StorageConfig

logger = logging.getLogger(__name__)

_VALID_ID = re.compile(r"^[A-Za-z0-9_]+$")
_AUDIO_INDEX = re.compile(r"_(\d+)")
INDEX_FILENAME = "shared_conversations.json"


class InvalidConversationId(ValueError):
    pass


def _audio_sort_key(filename: str) -> int:
    match = _AUDIO_INDEX.search(filename)
    return int(match.group(1)) if match else 0


def _share_title(document: dict[str, Any]) -> str:
    """Título del índice: inicio del primer mensaje, si tiene texto."""
    messages = document.get("messages")
    first = ""
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        content = messages[0].get("content")
        if isinstance(content, str):
            first = content
    return f"{first[:50]}..." if first else "Shared Conversation"


class TranscriptStore:
    """Store de transcripts basado en filesystem."""

    def __init__(self, config: StorageConfig) -> None:
        self.conversations_dir = Path(config.conversations_dir)
        self.data_dir = Path(config.data_dir)
        self.public_url = config.public_url.rstrip("/")
        self.share_days = config.share_days

    # ──────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────

    @staticmethod
    def check_id(conversation_id: str) -> str:
        if not conversation_id or not _VALID_ID.match(conversation_id):
            raise InvalidConversationId(
                f"Invalid conversation ID format: {conversation_id!r}"
            )
        return conversation_id

    def _conversation_path(self, conversation_id: str) -> Path:
        return self.conversations_dir / self.check_id(conversation_id)

    def _audio_dir(self, conversation_id: str) -> Path:
        return self._conversation_path(conversation_id) / "audio"

    @property
    def index_path(self) -> Path:
        return self.data_dir / INDEX_FILENAME

    def _read_index(self) -> dict[str, Any]:
        try:
            return json.loads(self.index_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Índice de compartidos corrupto, se reinicia: %s", self.index_path)
            return {}

    def _write_index(self, index: dict[str, Any]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(json.dumps(index, indent=2), encoding="utf-8")

    # ──────────────────────────────────────────
    # API
    # ──────────────────────────────────────────

    def persist(
        self, conversation_id: str, document: dict[str, Any]
    ) -> ShareReference:
        """Guarda el documento, registra la expiración y devuelve el link."""
        conv_path = self._conversation_path(conversation_id)
        (conv_path / "audio").mkdir(parents=True, exist_ok=True)

        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(days=self.share_days)

        data = {**document, "shared": True, "shared_at": now.isoformat()}
        (conv_path / "conversation.json").write_text(
            json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8"
        )

        index = self._read_index()
        index[conversation_id] = {
            "conversation_id": conversation_id,
            "shared_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
            "has_audio": bool(self.list_audio(conversation_id)),
            "title": _share_title(data),
        }
        self._write_index(index)

        url = f"{self.public_url}/share/{conversation_id}"
        logger.info("Conversación %s compartida → %s", conversation_id, url)
        return ShareReference(url=url, expires_at=expires_at)

    def save_audio(self, conversation_id: str, message_index: int, audio: bytes) -> Path:
        audio_dir = self._audio_dir(conversation_id)
        audio_dir.mkdir(parents=True, exist_ok=True)
        path = audio_dir / f"message_{message_index}.mp3"
        path.write_bytes(audio)
        logger.debug("💾 Audio guardado: %s", path)
        return path

    def list_audio(self, conversation_id: str) -> list[str]:
        """Assets de audio ordenados por índice de mensaje ([] si no hay)."""
        audio_dir = self._audio_dir(conversation_id)
        if not audio_dir.is_dir():
            return []
        files = [p.name for p in audio_dir.iterdir() if p.suffix == ".mp3"]
        return sorted(files, key=_audio_sort_key)

    def audio_path(self, conversation_id: str, filename: str) -> Optional[Path]:
        """Ruta de un asset, o None si no existe o sale del directorio."""
        audio_dir = self._audio_dir(conversation_id).resolve()
        path = (audio_dir / filename).resolve()
        try:
            path.relative_to(audio_dir)
        except ValueError:
            return None
        return path if path.is_file() else None

    def load(self, conversation_id: str) -> Optional[dict[str, Any]]:
        """Documento compartido, o None si no existe o ya venció."""
        path = self._conversation_path(conversation_id) / "conversation.json"
        if not path.is_file():
            return None

        entry = self._read_index().get(conversation_id)
        if entry and entry.get("expires_at"):
            expires_at = datetime.fromisoformat(entry["expires_at"])
            if expires_at <= datetime.now(timezone.utc):
                logger.info("Conversación %s vencida (%s)", conversation_id, expires_at)
                return None

        return json.loads(path.read_text(encoding="utf-8"))
