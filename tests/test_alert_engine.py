import pytest

from common.alert_engine import AlertEngine
from common.models import AlertLevel


class FakeNotifier:
    def __init__(self):
        self.events = []

    def beep(self):
        self.events.append("beep")

    def speak(self, text):
        self.events.append(("speak", text))

    @property
    def spoken(self):
        return [e for e in self.events if e != "beep"]


def active_engine(voice_text="Slow down"):
    notifier = FakeNotifier()
    engine = AlertEngine(notifier, voice_text=voice_text)
    engine.activate()
    return engine, notifier


def expected_level(speed, limit):
    if speed > limit + 38:
        return AlertLevel.DANGER
    if speed > limit + 33:
        return AlertLevel.WARNING
    return AlertLevel.SAFE


@pytest.mark.parametrize("limit", [0, 30, 50, 110])
def test_level_follows_thresholds(limit):
    engine, _ = active_engine()
    speeds = [s / 2 for s in range(0, 2 * (limit + 60))]
    speeds += [limit + 33, limit + 33.01, limit + 38, limit + 38.01]
    for i, speed in enumerate(speeds):
        assert engine.evaluate(speed, limit, now=float(i)) == expected_level(speed, limit), speed


def test_missing_limit_counts_as_zero():
    engine, _ = active_engine()
    assert engine.evaluate(34, None, now=0) == AlertLevel.WARNING
    assert engine.evaluate(39, None, now=1) == AlertLevel.DANGER


def test_thresholds():
    assert AlertEngine.thresholds(50) == (83, 88)
    assert AlertEngine.thresholds(None) == (33, 38)


def test_inactive_engine_is_always_safe_and_silent():
    notifier = FakeNotifier()
    engine = AlertEngine(notifier)
    assert engine.evaluate(200, 50, now=0) == AlertLevel.SAFE
    assert notifier.events == []


def test_deactivate_forces_safe():
    engine, _ = active_engine()
    engine.evaluate(200, 50, now=0)
    assert engine.level == AlertLevel.DANGER
    engine.deactivate()
    assert engine.level == AlertLevel.SAFE
    assert engine.evaluate(200, 50, now=10) == AlertLevel.SAFE


def test_danger_beeps_and_speaks():
    engine, notifier = active_engine(voice_text="Over the limit")
    engine.evaluate(100, 50, now=0)
    assert notifier.events == ["beep", ("speak", "Over the limit")]


def test_warning_only_beeps():
    engine, notifier = active_engine()
    engine.evaluate(85, 50, now=0)
    assert notifier.events == ["beep"]


def test_danger_notifications_respect_3s_cooldown():
    engine, notifier = active_engine()
    for now in (0.0, 1.0, 2.0, 2.9):
        engine.evaluate(100, 50, now=now)
    assert len(notifier.spoken) == 1

    engine.evaluate(100, 50, now=3.0)
    assert len(notifier.spoken) == 2


def test_warning_notifications_respect_1s_cooldown():
    engine, notifier = active_engine()
    for now in (0.0, 0.5, 0.99, 1.0, 1.5):
        engine.evaluate(85, 50, now=now)
    assert notifier.events == ["beep", "beep"]


def test_high_sample_rate_does_not_raise_notification_rate():
    engine, notifier = active_engine()
    times = []
    for i in range(100):
        now = i / 10
        before = len(notifier.spoken)
        engine.evaluate(120, 50, now=now)
        if len(notifier.spoken) > before:
            times.append(now)

    assert times == [0.0, 3.0, 6.0, 9.0]


def test_level_is_recomputed_every_sample():
    engine, _ = active_engine()
    assert engine.evaluate(100, 50, now=0) == AlertLevel.DANGER
    assert engine.evaluate(40, 50, now=0.1) == AlertLevel.SAFE
    assert engine.evaluate(85, 50, now=0.2) == AlertLevel.WARNING


def test_breach_after_clearing_runs_on_its_own_timer():
    engine, notifier = active_engine()
    engine.evaluate(100, 50, now=0)
    engine.evaluate(40, 50, now=1)
    # back in danger before the cooldown ran out: no new alert yet
    engine.evaluate(100, 50, now=2)
    assert len(notifier.spoken) == 1
    engine.evaluate(100, 50, now=3)
    assert len(notifier.spoken) == 2
