"""Unit tests for AudioCapture class."""

import io
import wave
from unittest.mock import Mock

import pyaudio
import pytest
from pubsub import pub

from fluentcoach.audio.audio_pub import AudioPublisher, STATUS_TOPIC
from fluentcoach.audio.capture import AudioCapture
from fluentcoach.errors import CaptureBusy, PermissionDenied
from fluentcoach.models.audio import AudioStats, CaptureStatus


class StatusRecorder:
    """Collects capture status transitions published over pubsub."""

    def __init__(self):
        self.transitions = []

    def __call__(self, previous, current):
        self.transitions.append((previous, current))


@pytest.fixture
def status_recorder():
    recorder = StatusRecorder()
    pub.subscribe(recorder, STATUS_TOPIC)
    yield recorder
    pub.unsubscribe(recorder, STATUS_TOPIC)


@pytest.mark.unit
class TestAudioCapture:
    """Test cases for AudioCapture class."""

    def test_initialization(self):
        """Test AudioCapture initialization with default parameters."""
        capture = AudioCapture()

        assert capture.sample_rate == 16000
        assert capture.chunk_size == 1024
        assert capture.channels == 1
        assert capture.status == CaptureStatus.IDLE
        assert capture.is_recording is False
        assert capture.total_chunks == 0

    def test_initialization_custom_parameters(self):
        """Test AudioCapture initialization with custom parameters."""
        capture = AudioCapture(sample_rate=44100, chunk_size=2048, channels=2)

        assert capture.sample_rate == 44100
        assert capture.chunk_size == 2048
        assert capture.channels == 2

    def test_start_capture_opens_callback_stream(self, mock_pyaudio):
        """Test starting a capture acquires the device in callback mode."""
        capture = AudioCapture()

        handle = capture.start_capture()

        assert capture.status == CaptureStatus.RECORDING
        assert capture.is_recording is True
        assert handle.stream is mock_pyaudio['stream']
        kwargs = mock_pyaudio['instance'].open.call_args.kwargs
        assert kwargs['input'] is True
        assert kwargs['rate'] == 16000
        assert kwargs['frames_per_buffer'] == 1024
        assert callable(kwargs['stream_callback'])

    def test_start_capture_twice_raises_busy(self, mock_pyaudio):
        """Test a second start while recording fails with CaptureBusy."""
        capture = AudioCapture()
        capture.start_capture()

        with pytest.raises(CaptureBusy):
            capture.start_capture()

        assert mock_pyaudio['class'].call_count == 1
        assert capture.status == CaptureStatus.RECORDING

    def test_permission_denied(self, mock_pyaudio, status_recorder):
        """Test a refused device surfaces PermissionDenied and enters error state."""
        mock_pyaudio['instance'].open.side_effect = OSError("Invalid input device")
        capture = AudioCapture(publisher=AudioPublisher())

        with pytest.raises(PermissionDenied):
            capture.start_capture()

        assert capture.status == CaptureStatus.ERROR
        mock_pyaudio['instance'].terminate.assert_called_once()
        assert status_recorder.transitions == [(CaptureStatus.IDLE, CaptureStatus.ERROR)]

        capture.recover()
        assert capture.status == CaptureStatus.IDLE

    def test_no_input_device(self, mock_pyaudio):
        """Test a missing default input device is treated as permission denied."""
        mock_pyaudio['instance'].get_default_input_device_info.side_effect = OSError("No Default Input Device")
        capture = AudioCapture()

        with pytest.raises(PermissionDenied):
            capture.start_capture()
        mock_pyaudio['instance'].open.assert_not_called()

    def test_callback_buffers_chunks_in_order(self, mock_pyaudio, feed_audio):
        """Test fragments delivered by the device are kept in arrival order."""
        capture = AudioCapture()
        handle = capture.start_capture()

        results = feed_audio([b'\x01\x00' * 4, b'\x02\x00' * 4, b'\x03\x00' * 4])

        assert all(r == (None, pyaudio.paContinue) for r in results)
        assert handle.chunks == [b'\x01\x00' * 4, b'\x02\x00' * 4, b'\x03\x00' * 4]
        assert capture.total_chunks == 3

    def test_stop_capture_returns_wav_blob(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test stopping yields one blob containing every fragment."""
        capture = AudioCapture()
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk, sample_audio_chunk])

        blob = capture.stop_capture(handle)

        assert blob is not None
        assert blob.mime_type == "audio/wav"
        assert capture.status == CaptureStatus.PROCESSING
        with wave.open(io.BytesIO(blob.data), 'rb') as wf:
            assert wf.getframerate() == 16000
            assert wf.readframes(wf.getnframes()) == sample_audio_chunk * 2
        assert blob.duration_seconds == pytest.approx(2048 / 16000)

    def test_stop_releases_device(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test the stream is stopped and closed and PyAudio terminated on stop."""
        capture = AudioCapture()
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk])

        capture.stop_capture(handle)

        mock_pyaudio['stream'].stop_stream.assert_called_once()
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()
        assert handle.stream is None

    def test_stop_with_no_audio_returns_none(self, mock_pyaudio):
        """Test an immediate stop produces no blob and returns to idle."""
        capture = AudioCapture()
        handle = capture.start_capture()

        assert capture.stop_capture(handle) is None
        assert capture.status == CaptureStatus.IDLE
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_callback_after_stop_completes_stream(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test late device callbacks are ignored once the handle is closed."""
        capture = AudioCapture()
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk])
        capture.stop_capture(handle)

        results = feed_audio([sample_audio_chunk])

        assert results == [(None, pyaudio.paComplete)]
        assert len(handle.chunks) == 1

    def test_stop_with_stale_handle_raises(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test a handle from a finished recording cannot stop the next one."""
        capture = AudioCapture()
        old_handle = capture.start_capture()
        capture.stop_capture(old_handle)

        capture.start_capture()
        with pytest.raises(ValueError):
            capture.stop_capture(old_handle)

    def test_start_after_finish_uses_new_device(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test each recording acquires the device afresh."""
        capture = AudioCapture()
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk])
        capture.stop_capture(handle)

        with pytest.raises(CaptureBusy):
            capture.start_capture()  # still processing

        capture.finish()
        second = capture.start_capture()

        assert second.handle_id != handle.handle_id
        assert mock_pyaudio['class'].call_count == 2

    def test_state_transitions_published(self, mock_pyaudio, feed_audio, sample_audio_chunk, status_recorder):
        """Test idle -> recording -> processing -> idle is published."""
        capture = AudioCapture(publisher=AudioPublisher())
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk])
        capture.stop_capture(handle)
        capture.finish()

        assert status_recorder.transitions == [
            (CaptureStatus.IDLE, CaptureStatus.RECORDING),
            (CaptureStatus.RECORDING, CaptureStatus.PROCESSING),
            (CaptureStatus.PROCESSING, CaptureStatus.IDLE),
        ]

    def test_fail_releases_active_recording(self, mock_pyaudio):
        """Test failing mid-recording frees the device and enters error state."""
        capture = AudioCapture()
        capture.start_capture()

        capture.fail(RuntimeError("boom"))

        assert capture.status == CaptureStatus.ERROR
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_release_from_any_state(self, mock_pyaudio):
        """Test release tears down and forces idle."""
        capture = AudioCapture()
        capture.start_capture()

        capture.release()

        assert capture.status == CaptureStatus.IDLE
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_close_error_still_terminates(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test PyAudio is terminated even if closing the stream fails."""
        mock_pyaudio['stream'].stop_stream.side_effect = OSError("Stream not open")
        capture = AudioCapture()
        handle = capture.start_capture()
        feed_audio([sample_audio_chunk])

        blob = capture.stop_capture(handle)

        assert blob is not None
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_level_meter_fed_from_callback(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test live fragments reach the level meter."""
        meter = Mock()
        meter.last_peak = 0.5
        capture = AudioCapture(level_meter=meter)
        capture.start_capture()

        feed_audio([sample_audio_chunk, sample_audio_chunk])

        meter.reset.assert_called_once()
        assert meter.feed.call_count == 2

    def test_get_recording_stats(self, mock_pyaudio, feed_audio, sample_audio_chunk):
        """Test getting recording statistics."""
        meter = Mock()
        meter.last_peak = 0.25
        capture = AudioCapture(level_meter=meter)
        capture.start_capture()
        feed_audio([sample_audio_chunk] * 3)

        stats = capture.get_recording_stats()

        assert isinstance(stats, AudioStats)
        assert stats.is_recording is True
        assert stats.total_chunks == 3
        assert stats.sample_rate == 16000
        assert stats.peak_level == 0.25
        assert stats.duration_seconds >= 0
