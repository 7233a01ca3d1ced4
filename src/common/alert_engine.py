#
# alert_engine.py
# maps (speed, limit) to a discrete alert level
# the level is recomputed from scratch on every fix, only the
# notifications are rate limited
#
from __future__ import annotations
import logging
from typing import Optional, Protocol, Tuple

from common.models import AlertLevel

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def beep(self) -> None:
        ...

    def speak(self, text: str) -> None:
        ...


class AlertEngine:
    # GPS speed jitter buffer, not a legal tolerance
    TOLERANCE_KMH = 38
    PRE_WARNING_BUFFER_KMH = 5
    DANGER_COOLDOWN_S = 3.0
    WARNING_COOLDOWN_S = 1.0

    def __init__(self, notifier: Notifier, voice_text: str = "Slow down"):
        self.notifier = notifier
        self.voice_text = voice_text

        self.active = False
        self.level = AlertLevel.SAFE
        self.last_danger_notify_at: Optional[float] = None
        self.last_warning_notify_at: Optional[float] = None

    @classmethod
    def thresholds(cls, limit_kmh: Optional[float]) -> Tuple[float, float]:
        """(warning, danger) speeds for a limit; a missing limit counts as 0."""
        danger = (limit_kmh or 0) + cls.TOLERANCE_KMH
        return danger - cls.PRE_WARNING_BUFFER_KMH, danger

    def activate(self):
        self.active = True
        self.level = AlertLevel.SAFE

    def deactivate(self):
        self.active = False
        self.level = AlertLevel.SAFE

    @staticmethod
    def _cooled_down(last: Optional[float], now: float, cooldown: float) -> bool:
        return last is None or now - last >= cooldown

    def evaluate(self, speed_kmh: float, limit_kmh: Optional[float], now: float) -> AlertLevel:
        if not self.active:
            self.level = AlertLevel.SAFE
            return self.level

        warning, danger = self.thresholds(limit_kmh)

        if speed_kmh > danger:
            self.level = AlertLevel.DANGER
            if self._cooled_down(self.last_danger_notify_at, now, self.DANGER_COOLDOWN_S):
                logger.warning(f"[ALERT] {speed_kmh:.1f} km/h > {danger:g} (limit {limit_kmh})")
                self.notifier.beep()
                self.notifier.speak(self.voice_text)
                self.last_danger_notify_at = now
        elif speed_kmh > warning:
            self.level = AlertLevel.WARNING
            if self._cooled_down(self.last_warning_notify_at, now, self.WARNING_COOLDOWN_S):
                logger.info(f"[ALERT] {speed_kmh:.1f} km/h approaching {danger:g}")
                self.notifier.beep()
                self.last_warning_notify_at = now
        else:
            self.level = AlertLevel.SAFE

        return self.level
