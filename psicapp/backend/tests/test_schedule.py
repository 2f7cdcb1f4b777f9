import random
import unittest
from datetime import datetime
from types import SimpleNamespace

from psicapp.backend.app.schedule import (
    WELLNESS_MESSAGES,
    build_reminders,
    next_reminder_at,
    parse_hhmm,
    reminder_message,
)


class ScheduleTests(unittest.TestCase):
    def setUp(self):
        # Monday
        self.now = datetime(2025, 1, 6, 9, 0)

    def test_parse_hhmm(self):
        self.assertEqual(parse_hhmm("07:05"), (7, 5))
        self.assertEqual(parse_hhmm("23:59"), (23, 59))
        for bad in ("24:00", "7h", "", "12:60"):
            with self.subTest(value=bad):
                with self.assertRaises(ValueError):
                    parse_hhmm(bad)

    def test_reminder_later_today(self):
        self.assertEqual(next_reminder_at(1, "10:00", 15, self.now), datetime(2025, 1, 6, 9, 45))

    def test_reminder_already_passed_moves_to_next_week(self):
        self.assertEqual(next_reminder_at(1, "09:00", 10, self.now), datetime(2025, 1, 13, 8, 50))

    def test_reminder_on_other_days(self):
        self.assertEqual(next_reminder_at(0, "08:00", 0, self.now), datetime(2025, 1, 12, 8, 0))
        self.assertEqual(next_reminder_at(3, "14:30", 30, self.now), datetime(2025, 1, 8, 14, 0))

    def test_reminder_message_with_wellness_tip(self):
        self.assertEqual(reminder_message("Cálculo", False), "Recordatorio: Cálculo comienza pronto")
        message = reminder_message("Cálculo", True, random.Random(3))
        prefix = "Recordatorio: Cálculo comienza pronto - "
        self.assertTrue(message.startswith(prefix))
        self.assertIn(message[len(prefix):], WELLNESS_MESSAGES)

    def test_build_reminders_sorted_and_skips_disabled(self):
        items = [
            SimpleNamespace(id=1, title="Física", day=3, start_time="08:00", before_minutes=10,
                            notifications_enabled=True, include_wellness=False),
            SimpleNamespace(id=2, title="Descanso", day=1, start_time="11:00", before_minutes=5,
                            notifications_enabled=True, include_wellness=False),
            SimpleNamespace(id=3, title="Taller", day=2, start_time="16:00", before_minutes=5,
                            notifications_enabled=False, include_wellness=False),
        ]
        reminders = build_reminders(items, self.now)
        self.assertEqual([item["item_id"] for item in reminders], [2, 1])
        self.assertEqual(reminders[0]["title"], "Próxima actividad: Descanso")
        self.assertEqual(reminders[0]["day"], "Lunes")
        self.assertEqual(reminders[0]["data"], {"screen": "schedule", "itemId": 2})


if __name__ == "__main__":
    unittest.main()
