"""Testes para a sessão de gravação e a captura."""

import time

import numpy as np
import pytest

from diario_bordo.audio.capture import AudioBuffer, DeviceUnavailableError, MicrophoneCapture
from diario_bordo.audio.level_meter import MeterSettings, SmoothedLevelState
from diario_bordo.audio.session import RecordingSession, SessionState


class FakeCapture:
    """Captura simulada com buffer controlado pelo teste."""

    def __init__(self, fail_open=False, fail_read=False):
        self.fail_open = fail_open
        self.fail_read = fail_read
        self.buffer = np.zeros(2048, dtype=np.float32)
        self.opened = 0
        self.closed = 0

    def open(self):
        if self.fail_open:
            raise DeviceUnavailableError("Permissão negada")
        self.opened += 1

    def close(self):
        self.closed += 1

    def get_time_domain_data(self):
        if self.fail_read:
            raise OSError("stream interrompido")
        return self.buffer.copy()

    def get_recording(self):
        return AudioBuffer(
            data=np.zeros(16000, dtype=np.int16),
            sample_rate=16000,
            channels=1,
            duration=1.0,
            timestamp=0.0,
        )


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_session_starts_idle():
    session = RecordingSession(FakeCapture())
    assert session.state is SessionState.IDLE
    assert session.tick() is None
    assert session.stop() is None


def test_device_failure_stays_idle():
    """Falha ao abrir o microfone mantém a sessão parada."""
    capture = FakeCapture(fail_open=True)
    session = RecordingSession(capture)

    with pytest.raises(DeviceUnavailableError):
        session.start(background=False)

    assert session.state is SessionState.IDLE
    assert session.tick() is None


def test_tick_renders_frame(clock):
    """Cada tick mede, suaviza e renderiza."""
    frames = []
    capture = FakeCapture()
    capture.buffer[:] = 0.5
    session = RecordingSession(capture, on_frame=frames.append, clock=clock)

    session.start(background=False)
    assert session.is_capturing

    frame = session.tick()
    assert frame.active_bars == 20
    assert frame.peak_bar == 9
    assert frames == [frame]
    assert session.last_frame is frame


def test_release_between_ticks(clock):
    """Após silêncio o nível cai 30% por tick."""
    capture = FakeCapture()
    capture.buffer[:] = 0.1
    session = RecordingSession(capture, clock=clock)
    session.start(background=False)

    session.tick()
    assert session.level_state.smoothed_level == pytest.approx(0.3)

    capture.buffer[:] = 0.0
    clock.now += 50
    session.tick()
    assert session.level_state.smoothed_level == pytest.approx(0.21)


def test_read_failure_is_zero_sample(clock):
    """Falha de leitura no tick é tratada como silêncio."""
    session = RecordingSession(FakeCapture(fail_read=True), clock=clock)
    session.start(background=False)

    frame = session.tick()
    assert frame.active_bars == 0
    assert not frame.is_clipping
    assert session.is_capturing


def test_clipping_flag(clock):
    capture = FakeCapture()
    capture.buffer[:] = 0.0
    capture.buffer[0] = 0.99
    session = RecordingSession(capture, clock=clock)
    session.start(background=False)

    assert session.tick().is_clipping


def test_stop_releases_and_resets(clock):
    """Parar libera o dispositivo e descarta o estado."""
    capture = FakeCapture()
    capture.buffer[:] = 0.5
    session = RecordingSession(capture, clock=clock)
    session.start(background=False)
    session.tick()

    recording = session.stop()

    assert isinstance(recording, AudioBuffer)
    assert recording.duration_seconds == 1
    assert capture.closed == 1
    assert session.state is SessionState.IDLE
    assert session.level_state == SmoothedLevelState()
    assert session.tick() is None


def test_restart_starts_from_rest(clock):
    """Nova gravação não herda o nível da anterior."""
    capture = FakeCapture()
    capture.buffer[:] = 0.5
    session = RecordingSession(capture, clock=clock)

    session.start(background=False)
    session.tick()
    session.stop()

    capture.buffer[:] = 0.0
    session.start(background=False)
    assert session.level_state == SmoothedLevelState()
    assert session.tick().active_bars == 0
    assert capture.opened == 2


def test_elapsed_seconds(clock):
    session = RecordingSession(FakeCapture(), clock=clock)
    assert session.elapsed_seconds == 0
    session.start(background=False)
    clock.now += 2500
    assert session.elapsed_seconds == 2


def test_background_ticks():
    """Thread de ticks gera quadros até a sessão parar."""
    frames = []
    capture = FakeCapture()
    capture.buffer[:] = 0.2
    session = RecordingSession(
        capture,
        on_frame=frames.append,
        settings=MeterSettings(update_interval_ms=5),
    )

    session.start()
    deadline = time.time() + 2.0
    while not frames and time.time() < deadline:
        time.sleep(0.01)
    session.stop()

    assert frames
    count = len(frames)
    time.sleep(0.05)
    assert len(frames) == count


def test_capture_feed_window_and_recording():
    """Chunks PCM alimentam a janela de análise e a gravação."""
    capture = MicrophoneCapture(sample_rate=8000, analyser_size=4)

    capture.feed(np.array([16384, -16384], dtype=np.int16).tobytes())
    window = capture.get_time_domain_data()
    assert window.tolist() == pytest.approx([0.0, 0.0, 0.5, -0.5])

    capture.feed(np.full(8, 8192, dtype=np.int16).tobytes())
    assert capture.get_time_domain_data().tolist() == pytest.approx([0.25] * 4)

    recording = capture.get_recording()
    assert recording.data.size == 10
    assert recording.duration == pytest.approx(10 / 8000)


def test_capture_stops_recording_at_max_duration():
    capture = MicrophoneCapture(sample_rate=4, max_duration=1)
    capture.feed(np.ones(4, dtype=np.int16).tobytes())
    capture.feed(np.ones(4, dtype=np.int16).tobytes())
    assert capture.get_recording().data.size == 4


def test_capture_reset():
    capture = MicrophoneCapture(analyser_size=8)
    capture.feed(np.full(8, 1000, dtype=np.int16).tobytes())
    capture.reset()
    assert not capture.get_time_domain_data().any()
    assert capture.get_recording().data.size == 0
