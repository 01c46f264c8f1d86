"""Composition root — wires sensors, estimators, voice I/O and schedulers together.

Architecture
~~~~~~~~~~~~
* **Backends** are looked up once from the sensor registry
  (``settings.sensor_backend``) and instantiated here; nothing else in the
  package chooses between real and null devices.
* **Camera sharing** — presence and posture sample the same frame source,
  which presence opens and the engine closes; the blink estimator owns a
  second, higher-resolution session.
* **Keyboard** — one listener feeds both the keystroke monitor and the
  local hotkey matcher.  Listener-thread callbacks are marshalled onto the
  event loop.
* **Events** — estimators publish to the :class:`EventBus`; the focus
  tracker subscribes to it.
"""

from __future__ import annotations

import asyncio

import structlog

from ambient_health.config import Settings, get_settings
from ambient_health.estimators.blink import BLINK_FRAME_SIZE, BlinkRateEstimator
from ambient_health.estimators.keystroke import KeystrokeMonitor
from ambient_health.estimators.posture import PostureEstimator
from ambient_health.estimators.presence import PresenceDetector
from ambient_health.models import HealthMetrics
from ambient_health.monitors.context import HealthContext
from ambient_health.monitors.defaults import create_default_engine
from ambient_health.monitors.focus import FocusTracker
from ambient_health.notifications import create_dispatcher
from ambient_health.scheduler.messages import MessagePoller
from ambient_health.scheduler.summary import DailySummaryScheduler
from ambient_health.sensors.registry import BackendSet, get_backends
from ambient_health.services.clients import (
    create_message_provider,
    create_stats_provider,
    create_synthesizer,
    create_transcriber,
)
from ambient_health.streaming.bus import EventBus
from ambient_health.voice.capture import VoiceCaptureController
from ambient_health.voice.hotkey import HotkeyBinding
from ambient_health.voice.playback import SpeechQueue

logger = structlog.get_logger(__name__)


class AmbientHealthEngine:
    """Own every long-running component and their shared devices.

    Integration::

        engine = AmbientHealthEngine(get_settings())
        await engine.start()
        ...
        await engine.stop()
    """

    def __init__(self, settings: Settings | None = None, *, backends: BackendSet | None = None) -> None:
        s = settings or get_settings()
        self.settings = s
        self._backends = backends or get_backends(s.sensor_backend)
        b = self._backends

        self.bus = EventBus()

        # ── Sensors ───────────────────────────────────────────
        self._camera = b.frame_source(s.camera_index)
        self._blink_camera = b.frame_source(s.blink_camera_index, size=BLINK_FRAME_SIZE)
        self._microphone = b.microphone(sample_rate=s.voice_sample_rate)
        self._keyboard = b.keyboard()
        self._hotkey_backend = b.hotkey()

        # ── Estimators ────────────────────────────────────────
        self.presence = PresenceDetector(
            self._camera,
            bus=self.bus,
            interval=s.presence_interval_seconds,
            absence_threshold=s.presence_absence_threshold_seconds,
            stddev_threshold=s.presence_stddev_threshold,
        )
        self.posture = PostureEstimator(
            self._camera,
            bus=self.bus,
            interval=s.posture_interval_seconds,
            bad_threshold=s.posture_bad_threshold_seconds,
            y_low=s.posture_y_low_threshold,
            y_high=s.posture_y_high_threshold,
        )
        self.blink = BlinkRateEstimator(
            self._blink_camera,
            sample_interval=s.blink_sample_interval_seconds,
            stats_interval=s.blink_stats_interval_seconds,
            calibration_frames=s.blink_calibration_frames,
            drop_ratio=s.blink_drop_ratio,
            debounce=s.blink_debounce_seconds,
        )
        self.keystrokes = KeystrokeMonitor(
            window=s.keystroke_window_seconds,
            interval=s.keystroke_sample_interval_seconds,
            calibration=s.keystroke_calibration_seconds,
        )
        self.focus = FocusTracker(break_threshold=s.break_threshold_seconds)
        self.bus.subscribe(self.focus.handle_event)

        # ── Voice I/O ─────────────────────────────────────────
        self.speech = SpeechQueue(b.audio_output, synthesizer=create_synthesizer(s))
        self.voice = VoiceCaptureController(
            self._microphone,
            create_transcriber(s),
            bus=self.bus,
            listen_timeout=s.voice_listen_timeout_seconds,
            silence=s.voice_silence_seconds,
            min_speech=s.voice_min_speech_seconds,
            amplitude_threshold=s.voice_amplitude_threshold,
            cooldown=s.voice_cooldown_seconds,
            min_segment_bytes=s.voice_min_segment_bytes,
        )
        self.hotkey = HotkeyBinding(s.hotkey_chord, self.voice.toggle)

        # ── Proactive layer ───────────────────────────────────
        self.dispatcher = create_dispatcher(s, self.speech)
        self.context = HealthContext(
            self.snapshot,
            create_default_engine(),
            self.dispatcher,
            bus=self.bus,
            interval=s.rules_interval_seconds,
            initial_delay=s.rules_initial_delay_seconds,
            min_alert_gap=s.rules_min_alert_gap_seconds,
            history_size=s.rules_history_size,
        )
        self.summary = DailySummaryScheduler(
            create_stats_provider(s),
            self.speech,
            target_hour=s.summary_target_hour,
            window_minutes=s.summary_window_minutes,
            interval=s.summary_check_interval_seconds,
        )
        self.messages = MessagePoller(
            create_message_provider(s),
            self.speech,
            auto_speak=s.auto_speak,
            interval=s.message_poll_interval_seconds,
        )

        self._loop: asyncio.AbstractEventLoop | None = None
        self._bus_task: asyncio.Task | None = None
        self._running = False

    # ── Snapshot ──────────────────────────────────────────────

    def snapshot(self) -> HealthMetrics:
        """Assemble the latest value of every signal the rules look at."""
        wpm = self.keystrokes.snapshot
        return HealthMetrics(
            wpm=wpm.wpm,
            wpm_trend=wpm.trend,
            posture_score=self.posture.state.score,
            is_present=self.presence.state.is_present,
            focus_duration_min=self.focus.focus_duration_min(),
            breaks_taken=self.focus.breaks_taken,
        )

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._loop = asyncio.get_running_loop()
        logger.info("engine.starting", backend=self.settings.sensor_backend)

        self._bus_task = asyncio.create_task(self.bus.start())
        await self.speech.start()

        await self.presence.start()
        if self.presence.state.device_available:
            await self.posture.start()
        else:
            logger.warning("engine.posture_disabled", reason="camera_unavailable")
        await self.blink.start()
        await self.keystrokes.start()

        self._keyboard.start(self._on_key_press, self._on_key_release)
        self.hotkey.bind(self._hotkey_backend)

        await self.context.start()
        await self.summary.start()
        await self.messages.start()
        logger.info("engine.started", hotkey_mode=self.hotkey.mode)

    async def stop(self) -> None:
        """Stop every loop and release every device, in reverse start order."""
        if not self._running:
            return
        self._running = False

        await self.messages.stop()
        await self.summary.stop()
        await self.context.stop()
        await self.dispatcher.aclose()

        self.hotkey.unbind()
        self._keyboard.stop()
        await self.voice.close()

        await self.keystrokes.stop()
        await self.blink.stop()
        await self.posture.stop()
        await self.presence.stop()
        await self._camera.close()

        await self.speech.stop()
        await self.bus.stop()
        if self._bus_task is not None:
            self._bus_task.cancel()
            try:
                await self._bus_task
            except asyncio.CancelledError:
                pass
            self._bus_task = None
        logger.info("engine.stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Keyboard bridge ───────────────────────────────────────

    def _on_key_press(self, key: str) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._handle_press, key)

    def _on_key_release(self, key: str) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.hotkey.handle_release, key)

    def _handle_press(self, key: str) -> None:
        self.keystrokes.record_key(key)
        self.hotkey.handle_press(key)
