"""
Tests para conversations/speech_playback.py

- TTS desactivado → no sintetiza ni marca speaking
- falla de síntesis → speaking False + espera fija, sin error
- reproducción que excede el techo → se corta y resuelve
- speaking vuelve a False al terminar, y el asset queda guardado
"""

import asyncio

import pytest

from duet.conversations.conversation_log import ConversationLog
from duet.conversations.conversation_utils import estimate_speaking_time
from duet.conversations.speech_playback import NullAudioSink, SpeechPlayback

from conftest import FakeSink, FakeSynth, SleepRecorder, make_agents, zero_timing


def _playback(*, tts=True, synth=None, sink=None, timing=None, store=None, sleep=None):
    log = ConversationLog()
    log.start()
    playback = SpeechPlayback(
        log=log,
        agents=make_agents(tts=tts),
        synthesizer=synth or FakeSynth(),
        sink=sink or FakeSink(),
        timing=timing or zero_timing(),
        store=store,
        sleep=sleep or SleepRecorder(),
    )
    return log, playback


class TestEstimate:
    def test_floor(self):
        assert estimate_speaking_time("") == 1.5
        assert estimate_speaking_time("hola") == 1.5

    def test_ten_words(self):
        # 10 * 0.4 + min(2, 0.5)
        assert estimate_speaking_time("uno " * 10) == pytest.approx(4.5)

    def test_pause_capped(self):
        # 100 * 0.4 + min(2, 5)
        assert estimate_speaking_time("w " * 100) == pytest.approx(42.0)


class TestSpeak:
    @pytest.mark.asyncio
    async def test_disabled_is_noop(self):
        synth = FakeSynth()
        events = []
        log, playback = _playback(tts=False, synth=synth)
        log.subscribe(events.append)

        await playback.speak("ai1", "Hola", 0)

        assert synth.calls == []
        assert not [e for e in events if e["type"] == "speaking"]

    @pytest.mark.asyncio
    async def test_plays_and_clears_speaking(self):
        sink = FakeSink()
        log, playback = _playback(sink=sink)
        speaking_values = []
        log.subscribe(
            lambda e: speaking_values.append(e["value"])
            if e["type"] == "speaking"
            else None
        )

        await playback.speak("ai2", "Hola **mundo**", 3)

        assert sink.played == [("ai2", 3)]
        assert speaking_values[0] is True
        assert speaking_values[-1] is False
        assert not log.is_speaking("ai2")
        assert not playback.is_busy("ai2")
        assert playback.has_audio

    @pytest.mark.asyncio
    async def test_uses_agent_voice_and_filtered_text(self):
        synth = FakeSynth()
        _, playback = _playback(synth=synth)

        await playback.speak("ai2", "Hola *risas* mundo 🎉", 0)

        voice, text = synth.calls[0]
        assert voice == "Angelo-PlayAI"
        assert text == "Hola mundo"

    @pytest.mark.asyncio
    async def test_synthesis_failure_falls_back(self):
        sleep = SleepRecorder()
        timing = zero_timing()
        timing.speech_fallback_s = 1.0
        sink = FakeSink()
        log, playback = _playback(
            synth=FakeSynth(fail=True), sink=sink, timing=timing, sleep=sleep
        )

        await playback.speak("ai1", "Hola", 0)

        assert sleep.calls == [1.0]
        assert sink.played == []
        assert not log.is_speaking("ai1")
        assert not playback.has_audio

    @pytest.mark.asyncio
    async def test_ceiling_stops_hung_sink(self):
        """Un sink que nunca termina se corta al superar el techo."""
        sink = FakeSink(hang=True)
        log, playback = _playback(sink=sink)
        assert playback.ceiling_for("Hola") == pytest.approx(2.0)
        playback.ceiling_for = lambda text: 0.05

        await asyncio.wait_for(playback.speak("ai1", "Hola", 0), timeout=2.0)

        assert sink.stopped == ["ai1"]
        assert not log.is_speaking("ai1")
        assert not playback.has_audio

    @pytest.mark.asyncio
    async def test_sink_error_is_swallowed(self):
        class BrokenSink(FakeSink):
            async def play(self, agent, audio, message_index):
                raise RuntimeError("sin salida de audio")

        log, playback = _playback(sink=BrokenSink())
        await playback.speak("ai1", "Hola", 0)
        assert not log.is_speaking("ai1")

    @pytest.mark.asyncio
    async def test_saves_asset(self, store):
        log, playback = _playback(store=store)
        playback.conversation_id = "conv_1_abc"

        await playback.speak("ai1", "Hola", 4)

        assert store.list_audio("conv_1_abc") == ["message_4.mp3"]

    @pytest.mark.asyncio
    async def test_stop_during_synthesis_discards_audio(self, store):
        """Si el run se detiene mientras se sintetiza, el audio no suena ni se guarda."""
        synth = FakeSynth()
        synth.gate = asyncio.Event()
        sink = FakeSink()
        log, playback = _playback(synth=synth, sink=sink, store=store)
        playback.conversation_id = "conv_1_abc"

        task = asyncio.create_task(playback.speak("ai1", "Hola", 1))
        await asyncio.wait_for(synth.entered.wait(), 1.0)
        log.stop("Conversation stopped")
        synth.gate.set()
        await asyncio.wait_for(task, 1.0)

        assert sink.played == []
        assert store.list_audio("conv_1_abc") == []
        assert not log.is_speaking("ai1")
        assert not playback.is_busy("ai1")
        assert not playback.has_audio

    @pytest.mark.asyncio
    async def test_stop_all_stops_both(self):
        sink = FakeSink()
        _, playback = _playback(sink=sink)
        await playback.stop_all()
        assert sink.stopped == ["ai1", "ai2"]

    @pytest.mark.asyncio
    async def test_null_sink(self):
        log, playback = _playback(sink=NullAudioSink())
        await playback.speak("ai1", "Hola", 0)
        assert playback.has_audio
