from __future__ import annotations

import random
import re
from datetime import datetime, time, timedelta
from typing import List, Optional, Tuple

# 0 = Sunday, matching the client's weekday numbering.
DAY_NAMES = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]

ITEM_TYPES = ["class", "break", "activity"]

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

WELLNESS_MESSAGES = [
    "Recuerda respirar profundamente antes de comenzar.",
    "Toma un momento para estirar tu cuerpo antes de esta actividad.",
    "Hidrátate bien durante esta sesión.",
    "Recuerda mantener una buena postura durante la clase.",
    "Después de esta actividad, tómate 5 minutos para descansar la vista.",
    "Antes de comenzar, establece una intención positiva para esta actividad.",
]


def parse_hhmm(value: str) -> Tuple[int, int]:
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def sunday_based_weekday(moment: datetime) -> int:
    return (moment.weekday() + 1) % 7


def next_reminder_at(day: int, start_time: str, before_minutes: int, now: datetime) -> datetime:
    """Next moment to remind about a weekly item on ``day`` starting at ``start_time``."""
    hours, minutes = parse_hhmm(start_time)
    days_until = (day - sunday_based_weekday(now)) % 7
    start = datetime.combine(now.date() + timedelta(days=days_until), time(hours, minutes))
    fire_at = start - timedelta(minutes=before_minutes)
    if fire_at <= now:
        fire_at += timedelta(days=7)
    return fire_at


def reminder_message(title: str, include_wellness: bool, rng: Optional[random.Random] = None) -> str:
    message = f"Recordatorio: {title} comienza pronto"
    if include_wellness:
        rng = rng or random.Random()
        message += f" - {rng.choice(WELLNESS_MESSAGES)}"
    return message


def build_reminders(items, now: datetime, rng: Optional[random.Random] = None) -> List[dict]:
    reminders = []
    for item in items:
        if not item.notifications_enabled:
            continue
        fire_at = next_reminder_at(item.day, item.start_time, item.before_minutes, now)
        reminders.append({
            "item_id": item.id,
            "title": f"Próxima actividad: {item.title}",
            "body": reminder_message(item.title, item.include_wellness, rng),
            "fire_at": fire_at.isoformat(),
            "day": DAY_NAMES[item.day],
            "data": {"screen": "schedule", "itemId": item.id},
        })
    reminders.sort(key=lambda reminder: reminder["fire_at"])
    return reminders
