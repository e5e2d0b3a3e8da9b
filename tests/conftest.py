"""Fakes compartidos: proveedor de chat, TTS y sink sin red ni audio real."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from duet.config import AgentsConfig, StorageConfig, TimingConfig
from duet.conversations.conversation_log import ConversationLog
from duet.conversations.session import ConversationSession
from duet.conversations.speech_playback import SpeechPlayback
from duet.conversations.turn_engine import TurnEngine
from duet.storage import TranscriptStore


class FakeChat:
    """Proveedor de chat con respuestas programadas.

    Cada respuesta puede ser un str, una excepción (se lanza) o un
    callable que recibe el número de llamada. Si hay `gate`, cada
    llamada espera a que el test lo libere.
    """

    def __init__(self, responses=None, default: str = "ok"):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[dict] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def complete(self, agent, partner_name, history, text):
        self.calls.append({
            "agent": agent.id,
            "partner": partner_name,
            "history": list(history),
            "text": text,
        })
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        reply = self.responses.pop(0) if self.responses else self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(len(self.calls))
        return reply


class FakeSynth:
    """Sintetizador falso. Si hay `gate`, cada síntesis espera a que el test lo libere."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def synthesize(self, voice: str, text: str) -> bytes:
        self.calls.append((voice, text))
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("tts caído")
        return b"ID3fake-mp3"


class FakeSink:
    """Sink que 'reproduce' durante `duration` segundos (o nunca termina)."""

    def __init__(self, duration: float = 0.0, hang: bool = False):
        self.duration = duration
        self.hang = hang
        self.played: list[tuple[str, int]] = []
        self.stopped: list[str] = []

    async def play(self, agent, audio, message_index):
        self.played.append((agent, message_index))
        if self.hang:
            await asyncio.Event().wait()
        await asyncio.sleep(self.duration)

    async def stop(self, agent):
        self.stopped.append(agent)


class SleepRecorder:
    """Reemplazo de asyncio.sleep que registra las duraciones pedidas."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


def zero_timing() -> TimingConfig:
    return TimingConfig(
        thinking_min_s=0.0,
        thinking_max_s=0.0,
        inter_turn_pause_s=0.0,
        speech_grace_s=0.5,
        speech_fallback_s=0.0,
    )


def make_agents(tts: bool = False) -> AgentsConfig:
    agents = AgentsConfig()
    agents.ai1.model = "openai/gpt-4o-mini"
    agents.ai2.model = "anthropic/claude-3.5-haiku"
    agents.ai1.tts.enabled = tts
    agents.ai2.tts.enabled = tts
    return agents


class Rig:
    """Sesión completa armada con fakes."""

    def __init__(
        self,
        *,
        chat: FakeChat,
        agents: AgentsConfig,
        synth: FakeSynth,
        sink: FakeSink,
        timing: TimingConfig,
        store: TranscriptStore | None,
        sleep: Callable = None,
    ):
        self.log = ConversationLog()
        self.chat = chat
        self.agents = agents
        self.synth = synth
        self.sink = sink
        self.store = store
        sleep = sleep or SleepRecorder()
        self.sleep = sleep
        self.playback = SpeechPlayback(
            log=self.log,
            agents=agents,
            synthesizer=synth,
            sink=sink,
            timing=timing,
            store=store,
            sleep=sleep,
        )
        self.engine = TurnEngine(
            log=self.log,
            agents=agents,
            chat=chat,
            playback=self.playback,
            timing=timing,
            sleep=sleep,
        )
        self.session = ConversationSession(
            log=self.log,
            agents=agents,
            engine=self.engine,
            playback=self.playback,
            store=store,
        )

    @property
    def contents(self) -> list[str]:
        return [m.content for m in self.log.messages]

    @property
    def roles(self) -> list[str]:
        return [m.role for m in self.log.messages]


@pytest.fixture
def store_config(tmp_path) -> StorageConfig:
    return StorageConfig(
        conversations_dir=str(tmp_path / "public" / "conversations"),
        data_dir=str(tmp_path / "data"),
        public_url="http://test.local",
        share_days=30,
    )


@pytest.fixture
def store(store_config) -> TranscriptStore:
    return TranscriptStore(store_config)


@pytest.fixture
def make_rig(store):
    """Factory de Rig: make_rig(responses=[...], tts=False, ...)."""

    def _make(
        responses=None,
        *,
        default: str = "ok",
        tts: bool = False,
        synth_fail: bool = False,
        sink: FakeSink | None = None,
        timing: TimingConfig | None = None,
        with_store: bool = True,
    ) -> Rig:
        return Rig(
            chat=FakeChat(responses, default=default),
            agents=make_agents(tts=tts),
            synth=FakeSynth(fail=synth_fail),
            sink=sink or FakeSink(),
            timing=timing or zero_timing(),
            store=store if with_store else None,
        )

    return _make
