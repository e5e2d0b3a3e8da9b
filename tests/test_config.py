"""Tests de configuración."""

import pytest
import yaml


@pytest.fixture
def sample_yaml(tmp_path):
    """Crea un config.yaml temporal para testing."""
    config = {
        "agents": {
            "ai1": {
                "name": "Ada",
                "model": "openai/gpt-4o-mini",
                "temperature": 0.9,
                "tts": {"enabled": True},
            },
            "ai2": {"name": "Bob", "model": "mistralai/mistral-7b", "max_tokens": 300},
        },
        "llm": {"top_p": 0.8},
        "tts": {"backend": "edge", "edge_rate": "+10%"},
        "timing": {"thinking_min_s": 0.5, "inter_turn_pause_s": 0.2},
        "storage": {"share_days": 7},
        "webui": {"port": 9090},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(config), encoding="utf-8")
    return path


class TestConfigLoad:
    def test_load_valid_config(self, sample_yaml):
        from duet.config import load_config

        cfg = load_config(sample_yaml)
        assert cfg.agents.ai1.name == "Ada"
        assert cfg.agents.ai1.temperature == 0.9
        assert cfg.agents.ai2.max_tokens == 300
        assert cfg.llm.top_p == 0.8
        assert cfg.tts.backend == "edge"
        assert cfg.timing.thinking_min_s == 0.5
        assert cfg.timing.thinking_max_s == 3.0  # default
        assert cfg.storage.share_days == 7
        assert cfg.webui.port == 9090

    def test_agent_tts_merged_with_defaults(self, sample_yaml):
        from duet.config import load_config

        cfg = load_config(sample_yaml)
        assert cfg.agents.ai1.tts.enabled is True
        assert cfg.agents.ai1.tts.voice == "Arista-PlayAI"
        assert cfg.agents.ai2.tts.enabled is False
        assert cfg.agents.ai2.tts.voice == "Angelo-PlayAI"

    def test_agent_ids_fixed(self, tmp_path):
        from duet.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("agents:\n  ai2:\n    id: ai1\n    name: X\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.agents.ai2.id == "ai2"
        assert cfg.agents.ai2.name == "X"

    def test_load_missing_config_uses_defaults(self, tmp_path):
        from duet.config import load_config

        cfg = load_config(tmp_path / "nonexistent.yaml")
        assert cfg.agents.ai1.name == "AI-1"
        assert cfg.agents.ai2.name == "AI-2"
        assert cfg.agents.ai1.model == ""
        assert cfg.tts.model == "playai-tts"
        assert cfg.stt.model == "whisper-large-v3-turbo"
        assert cfg.timing.inter_turn_pause_s == 0.8
        assert cfg.storage.share_days == 30

    def test_unknown_keys_ignored(self, tmp_path):
        from duet.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("llm:\n  top_p: 0.5\n  bogus: 1\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.llm.top_p == 0.5

    def test_empty_file(self, tmp_path):
        from duet.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.webui.enabled is True

    def test_example_config_loads(self):
        """config.example.yaml del repo es válido."""
        from pathlib import Path

        from duet.config import load_config

        example = Path(__file__).parent.parent / "config.example.yaml"
        cfg = load_config(example)
        assert cfg.agents.ai1.model
        assert cfg.agents.ai2.model


class TestAgents:
    def test_get(self):
        from duet.config import AgentsConfig

        agents = AgentsConfig()
        assert agents.get("ai1") is agents.ai1
        assert agents.get("ai2") is agents.ai2
        with pytest.raises(KeyError):
            agents.get("ai3")

    def test_defaults_differ_per_agent(self):
        from duet.config import AgentsConfig

        agents = AgentsConfig()
        assert agents.ai1.prompt != agents.ai2.prompt
        assert agents.ai1.tts.voice != agents.ai2.tts.voice
