import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from psicapp.backend.app.emotions import (
    STRESS_ALERT_TITLE,
    STRESS_STRATEGIES,
    StressPatternResult,
    analyze_stress_patterns,
    next_daily_reminder_at,
    reminder_settings,
    should_record_stress_alert,
    stress_alert,
)


def record(emotion, intensity, recorded_at):
    return SimpleNamespace(emotion=emotion, intensity=intensity, recorded_at=recorded_at)


class StressPatternTests(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2025, 1, 6, 12, 0)

    def test_pattern_detected_with_three_recent_stress_records(self):
        records = [
            record("estresado", 4, datetime(2025, 1, 6, 10, 0)),
            record("ansioso", 3, datetime(2025, 1, 5, 22, 15)),
            record("ansioso", 5, datetime(2025, 1, 6, 10, 30)),
            record("estresado", 2, datetime(2025, 1, 6, 9, 0)),
            record("feliz", 5, datetime(2025, 1, 6, 8, 0)),
            record("estresado", 5, datetime(2024, 12, 20, 8, 0)),
        ]
        result = analyze_stress_patterns(records, now=self.now)
        self.assertEqual(result.weekly_stress_count, 3)
        self.assertEqual(result.stressful_days, {"lunes": 2, "domingo": 1})
        self.assertEqual(result.stressful_hours, {"10": 2, "22": 1})
        self.assertTrue(result.has_stress_pattern)
        self.assertEqual(result.strategies, STRESS_STRATEGIES)

    def test_two_records_are_not_a_pattern(self):
        records = [
            record("estresado", 3, datetime(2025, 1, 4, 18, 0)),
            record("ansioso", 4, datetime(2025, 1, 3, 18, 0)),
        ]
        result = analyze_stress_patterns(records, now=self.now)
        self.assertEqual(result.weekly_stress_count, 2)
        self.assertFalse(result.has_stress_pattern)
        self.assertEqual(result.strategies, [])

    def test_no_records(self):
        result = analyze_stress_patterns([], now=self.now)
        self.assertEqual(result.weekly_stress_count, 0)
        self.assertEqual(result.stressful_days, {})



class EmotionReminderTests(unittest.TestCase):
    def test_reminder_later_today(self):
        now = datetime(2025, 1, 6, 12, 0)
        self.assertEqual(next_daily_reminder_at(20, 0, now), datetime(2025, 1, 6, 20, 0))

    def test_reminder_passed_moves_to_tomorrow(self):
        now = datetime(2025, 1, 6, 20, 0)
        self.assertEqual(next_daily_reminder_at(20, 0, now), datetime(2025, 1, 7, 20, 0))

    def test_defaults_without_saved_settings(self):
        settings = reminder_settings(None, datetime(2025, 1, 6, 12, 0))
        self.assertEqual(settings, {"enabled": False, "hour": 20, "minute": 0, "next_reminder": None})

    def test_enabled_settings_include_next_reminder(self):
        saved = SimpleNamespace(enabled=True, hour=8, minute=30)
        settings = reminder_settings(saved, datetime(2025, 1, 6, 12, 0))
        self.assertEqual(settings["next_reminder"]["fire_at"], "2025-01-07T08:30:00")
        self.assertEqual(settings["next_reminder"]["data"], {"screen": "emotions"})


class StressAlertTests(unittest.TestCase):
    def test_alert_only_with_pattern(self):
        self.assertIsNone(stress_alert(StressPatternResult(weekly_stress_count=2)))
        alert = stress_alert(StressPatternResult(weekly_stress_count=3, has_stress_pattern=True))
        self.assertEqual(alert["title"], STRESS_ALERT_TITLE)

    def test_alert_cooldown(self):
        now = datetime(2025, 1, 6, 12, 0)
        self.assertTrue(should_record_stress_alert(None, now))
        self.assertFalse(should_record_stress_alert(now - timedelta(hours=3), now))
        self.assertTrue(should_record_stress_alert(now - timedelta(days=1), now))


if __name__ == "__main__":
    unittest.main()
