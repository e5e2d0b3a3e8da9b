"""
config.py – Carga y validación de configuración desde YAML.

Provee dataclasses tipadas para cada sección del config.yaml.
Única fuente de verdad para agentes, proveedores, tiempos y almacenamiento.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

AI1_DEFAULT_PROMPT = (
    "You are a curious and friendly AI who loves asking questions. "
    "You're having a conversation with another AI. Keep your responses brief "
    "and engaging. Ask follow-up questions. Answer short to the point."
)
AI2_DEFAULT_PROMPT = (
    "You are a knowledgeable and thoughtful AI. You're having a conversation "
    "with another AI. Respond to questions with interesting facts and insights. "
    "Keep responses concise. Answer short to the point."
)


# ──────────────────────────────────────────────
# Dataclasses de configuración
# ──────────────────────────────────────────────


@dataclass
class AgentTTSConfig:
    enabled: bool = False
    voice: str = "Arista-PlayAI"


@dataclass
class AgentConfig:
    """Un participante de la conversación (ai1 o ai2)."""

    id: str = "ai1"
    name: str = "AI-1"
    model: str = ""  # Vacío = sin configurar, start() lo rechaza
    prompt: str = AI1_DEFAULT_PROMPT
    max_tokens: int = 1200
    temperature: float = 0.5
    tts: AgentTTSConfig = field(default_factory=AgentTTSConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "prompt": self.prompt,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "tts": {"enabled": self.tts.enabled, "voice": self.tts.voice},
        }


def _default_ai1() -> AgentConfig:
    return AgentConfig()


def _default_ai2() -> AgentConfig:
    return AgentConfig(
        id="ai2",
        name="AI-2",
        prompt=AI2_DEFAULT_PROMPT,
        tts=AgentTTSConfig(voice="Angelo-PlayAI"),
    )


@dataclass
class AgentsConfig:
    ai1: AgentConfig = field(default_factory=_default_ai1)
    ai2: AgentConfig = field(default_factory=_default_ai2)

    def get(self, agent_id: str) -> AgentConfig:
        if agent_id == "ai1":
            return self.ai1
        if agent_id == "ai2":
            return self.ai2
        raise KeyError(agent_id)


@dataclass
class LLMConfig:
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""  # OpenRouter API key (o env OPENROUTER_API_KEY)
    top_p: float = 1.0
    timeout: float = 60.0
    site_url: str = "http://localhost:8080"
    title: str = "AI Conversation System"


@dataclass
class TTSConfig:
    backend: str = "groq"  # "groq" | "edge"
    base_url: str = "https://api.groq.com/openai/v1"
    api_key: str = ""  # Groq API key (o env GROQ_API_KEY)
    model: str = "playai-tts"
    response_format: str = "mp3"
    # Edge TTS settings (solo si backend: "edge")
    edge_rate: str = "+0%"
    edge_pitch: str = "+0Hz"


@dataclass
class STTConfig:
    base_url: str = "https://api.groq.com/openai/v1"
    api_key: str = ""
    model: str = "whisper-large-v3-turbo"
    response_format: str = "verbose_json"


@dataclass
class TimingConfig:
    thinking_min_s: float = 1.0
    thinking_max_s: float = 3.0
    inter_turn_pause_s: float = 0.8
    speech_grace_s: float = 0.5     # Margen sobre el tiempo estimado de lectura
    speech_fallback_s: float = 1.0  # Espera cuando falla la síntesis


@dataclass
class StorageConfig:
    conversations_dir: str = "./public/conversations/"
    data_dir: str = "./data/"
    public_url: str = "http://localhost:8080"
    share_days: int = 30


@dataclass
class WebUIConfig:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class DuetConfig:
    """Configuración raíz."""

    agents: AgentsConfig = field(default_factory=AgentsConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    webui: WebUIConfig = field(default_factory=WebUIConfig)


# ──────────────────────────────────────────────
# Carga
# ──────────────────────────────────────────────


def _dict_to_dataclass(cls: type, data: dict[str, Any]) -> Any:
    """Construye un dataclass desde un dict, ignorando keys desconocidas."""
    if not data:
        return cls()
    fieldnames = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in fieldnames}
    return cls(**filtered)


def _load_agent(data: dict[str, Any], default: AgentConfig) -> AgentConfig:
    """Mezcla la sección de un agente sobre sus defaults (incluye tts anidado)."""
    if not data:
        return default
    merged = default.to_dict()
    merged.update({k: v for k, v in data.items() if k not in ("id", "tts")})
    tts_data = {**merged.pop("tts"), **(data.get("tts") or {})}
    agent = _dict_to_dataclass(AgentConfig, merged)
    agent.tts = _dict_to_dataclass(AgentTTSConfig, tts_data)
    return agent


def load_config(path: Path | str | None = None) -> DuetConfig:
    """Carga config.yaml y devuelve DuetConfig tipado."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config no encontrado en %s, usando defaults.", config_path)
        return DuetConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    logger.info("Config cargado desde %s", config_path)

    agents = raw.get("agents", {}) or {}

    cfg = DuetConfig(
        agents=AgentsConfig(
            ai1=_load_agent(agents.get("ai1", {}), _default_ai1()),
            ai2=_load_agent(agents.get("ai2", {}), _default_ai2()),
        ),
        llm=_dict_to_dataclass(LLMConfig, raw.get("llm", {})),
        tts=_dict_to_dataclass(TTSConfig, raw.get("tts", {})),
        stt=_dict_to_dataclass(STTConfig, raw.get("stt", {})),
        timing=_dict_to_dataclass(TimingConfig, raw.get("timing", {})),
        storage=_dict_to_dataclass(StorageConfig, raw.get("storage", {})),
        webui=_dict_to_dataclass(WebUIConfig, raw.get("webui", {})),
    )

    return cfg
