"""
Test service wiring and process exit codes
"""
import asyncio
import json
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from config.base import DoorbellConfiguration
from core.cue_player import AudioResource
from service import app


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr(app, "load_dotenv", lambda: None)
    for name in ("DOORBELL_SINGLE_SOUND", "DOORBELL_DOUBLE_SOUND", "DOORBELL_WEBHOOK_URL", "DOORBELL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_parse_args():
    args = app.parse_args(["--doslack", "https://hook", "--broker", "h", "--port", "1", "--topic", "a", "--topic", "b"])
    assert args.doslack == "https://hook"
    assert (args.broker, args.port) == ("h", 1)
    assert args.topics == ["a", "b"]
    assert app.parse_args([]).topics is None


def test_missing_sound_configuration_exits_non_zero():
    assert app.main([]) == 1


def test_unsupported_sound_file_exits_non_zero(tmp_path, monkeypatch):
    monkeypatch.setenv("DOORBELL_SINGLE_SOUND", str(tmp_path / "ding.ogg"))
    monkeypatch.setenv("DOORBELL_DOUBLE_SOUND", str(tmp_path / "dong.wav"))
    assert app.main([]) == 1


def test_bus_failure_exits_non_zero(monkeypatch):
    monkeypatch.setenv("DOORBELL_SINGLE_SOUND", "ding.wav")
    monkeypatch.setenv("DOORBELL_DOUBLE_SOUND", "dong.wav")
    monkeypatch.setattr(app, "load_audio_resource", lambda path: AudioResource(np.zeros(4), 8000, path))

    class UnreachableAdapter:
        def __init__(self, settings, inbound, hooks=None):
            pass

        async def start(self):
            raise app.BusConnectionError("connection refused")

        def close(self):
            pass

    monkeypatch.setattr(app, "MessageAdapter", UnreachableAdapter)
    assert app.main([]) == 1


def test_run_service_plays_and_shuts_down_cleanly(monkeypatch):
    plays = []
    notes = []

    class RecordingPlayer:
        def __init__(self, resource, on_complete, on_finished=None, *, name):
            self.name = name
            self.on_complete = on_complete
            self.closed = False

        def play(self):
            plays.append(self.name)
            self.on_complete()

        def close(self):
            self.closed = True

    class ScriptedAdapter:
        """Delivers one press, then closes the inbound channel."""

        def __init__(self, settings, inbound, hooks=None):
            self.inbound = inbound

        async def start(self):
            payload = json.dumps({"Action": "double", "Battery": 80, "Linkquality": 50}).encode()
            self.inbound.put(SimpleNamespace(topic="sensors/Button", payload=payload))

            async def close_later():
                while not plays:
                    await asyncio.sleep(0.01)
                self.inbound.close()

            self._closer = asyncio.create_task(close_later())

        def close(self):
            self.inbound.close()

    monkeypatch.setattr(app, "load_audio_resource", lambda path: AudioResource(np.zeros(4), 8000, path))
    monkeypatch.setattr(app, "CuePlayer", RecordingPlayer)
    monkeypatch.setattr(app, "MessageAdapter", ScriptedAdapter)
    monkeypatch.setattr(app.NotificationSink, "notify", lambda self, text: notes.append(text))

    config = DoorbellConfiguration.from_env(
        {"DOORBELL_SINGLE_SOUND": "ding.wav", "DOORBELL_DOUBLE_SOUND": "dong.wav"},
        webhook_url="https://hook.invalid",
    )
    assert asyncio.run(asyncio.wait_for(app.run_service(config), timeout=5)) == 0
    assert plays == ["double"]
    assert notes == ["ding dong! (link quality 50; battery 80)"]


def test_shutdown_waits_for_sounding_cue_and_webhook_post(monkeypatch):
    events = []

    class SlowPlayer:
        def __init__(self, resource, on_complete, on_finished=None, *, name):
            self.name = name
            self.on_complete = on_complete

        def play(self):
            events.append(("play", self.name))

            def render_done():
                events.append(("complete", self.name))
                self.on_complete()

            threading.Timer(0.2, render_done).start()

        def close(self):
            events.append(("close", self.name))

    class PressThenShutdownAdapter:
        """Delivers one press and shuts down as soon as the cue starts."""

        def __init__(self, settings, inbound, hooks=None):
            self.inbound = inbound

        async def start(self):
            payload = json.dumps({"Action": "single", "Battery": 80, "Linkquality": 50}).encode()
            self.inbound.put(SimpleNamespace(topic="sensors/Button", payload=payload))

            async def close_on_play():
                while ("play", "single") not in events:
                    await asyncio.sleep(0.005)
                self.inbound.close()

            self._closer = asyncio.create_task(close_on_play())

        def close(self):
            self.inbound.close()

    def slow_notify(self, text):
        time.sleep(0.1)
        events.append(("notified", text))

    monkeypatch.setattr(app, "load_audio_resource", lambda path: AudioResource(np.zeros(4), 8000, path))
    monkeypatch.setattr(app, "CuePlayer", SlowPlayer)
    monkeypatch.setattr(app, "MessageAdapter", PressThenShutdownAdapter)
    monkeypatch.setattr(app.NotificationSink, "notify", slow_notify)
    monkeypatch.setattr(app.NotificationSink, "close", lambda self: events.append(("close", "notifier")))

    config = DoorbellConfiguration.from_env(
        {"DOORBELL_SINGLE_SOUND": "ding.wav", "DOORBELL_DOUBLE_SOUND": "dong.wav"},
        webhook_url="https://hook.invalid",
    )
    assert asyncio.run(asyncio.wait_for(app.run_service(config), timeout=5)) == 0

    assert events.index(("complete", "single")) < events.index(("close", "single"))
    assert events.index(("notified", "ding dong! (link quality 50; battery 80)")) < events.index(("close", "notifier"))


def test_shutdown_does_not_wait_forever_for_a_stuck_cue(monkeypatch):
    closed = []

    class StuckPlayer:
        def __init__(self, resource, on_complete, on_finished=None, *, name):
            self.name = name

        def play(self):
            pass

        def close(self):
            closed.append(self.name)

    class PressThenShutdownAdapter:
        def __init__(self, settings, inbound, hooks=None):
            self.inbound = inbound

        async def start(self):
            payload = json.dumps({"Action": "double"}).encode()
            self.inbound.put(SimpleNamespace(topic="sensors/Button", payload=payload))
            self.inbound.close()

        def close(self):
            self.inbound.close()

    monkeypatch.setattr(app, "load_audio_resource", lambda path: AudioResource(np.zeros(4), 8000, path))
    monkeypatch.setattr(app, "CuePlayer", StuckPlayer)
    monkeypatch.setattr(app, "MessageAdapter", PressThenShutdownAdapter)

    config = DoorbellConfiguration.from_env({"DOORBELL_SINGLE_SOUND": "ding.wav", "DOORBELL_DOUBLE_SOUND": "dong.wav"})
    result = asyncio.run(asyncio.wait_for(app.run_service(config, drain_timeout=0.1), timeout=5))
    assert result == 0
    assert sorted(closed) == ["double", "single"]
