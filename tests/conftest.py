import io

import numpy as np
import pytest
import soundfile as sf

from newsreader.ui_web.app import create_app


class FakeInputStream:
    """Stands in for ``sounddevice.InputStream``; ``feed`` plays the audio callback."""

    def __init__(self, samplerate, channels, callback):
        self.samplerate = samplerate
        self.channels = channels
        self.callback = callback
        self.active = False
        self.closed = False
        self.start_calls = 0

    def start(self):
        self.active = True
        self.start_calls += 1

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def feed(self, frames: int = 160, value: float = 0.1):
        block = np.full((frames, self.channels), value, dtype=np.float32)
        self.callback(block, frames, None, None)


class FakeStreamFactory:
    def __init__(self):
        self.streams: list[FakeInputStream] = []

    def __call__(self, **kwargs):
        stream = FakeInputStream(**kwargs)
        self.streams.append(stream)
        return stream

    @property
    def last(self) -> FakeInputStream:
        return self.streams[-1]


@pytest.fixture()
def stream_factory() -> FakeStreamFactory:
    return FakeStreamFactory()


@pytest.fixture()
def wav_only():
    return lambda fmt, subtype: fmt == "WAV"


@pytest.fixture()
def wav_bytes() -> bytes:
    duration = 0.25
    samplerate = 16000
    t = np.linspace(0, duration, int(duration * samplerate), endpoint=False)
    tone = 0.1 * np.sin(2 * np.pi * 440 * t)
    buffer = io.BytesIO()
    sf.write(buffer, tone, samplerate, format='WAV')
    return buffer.getvalue()


@pytest.fixture()
def flask_app(monkeypatch, tmp_path):
    monkeypatch.setenv("NEWSREADER_HOME", str(tmp_path / "cfg"))
    app = create_app({"TESTING": True})
    yield app


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def reader_services(flask_app):
    return flask_app.config["NEWSREADER_SERVICES"]
