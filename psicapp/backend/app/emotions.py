from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional, Sequence

EMOTIONS = [
    "feliz",
    "tranquilo",
    "neutro",
    "triste",
    "ansioso",
    "estresado",
    "enojado",
]

STRESS_EMOTIONS = {"estresado", "ansioso"}
STRESS_MIN_INTENSITY = 3
STRESS_PATTERN_THRESHOLD = 3
STRESS_WINDOW_DAYS = 7

# Indexed by datetime.weekday().
WEEKDAY_NAMES = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]

STRESS_STRATEGIES = [
    "Practica respiración profunda durante 5 minutos",
    "Realiza una caminata corta al aire libre",
    "Escucha música relajante",
    "Practica meditación guiada por 10 minutos",
    "Toma un descanso de 15 minutos de tus actividades",
    "Escribe en un diario sobre lo que te preocupa",
    "Realiza estiramientos suaves",
    "Habla con un amigo o familiar sobre cómo te sientes",
    "Toma un baño o ducha caliente",
    "Practica la técnica 5-4-3-2-1: identifica 5 cosas que ves, 4 que puedes tocar, "
    "3 que oyes, 2 que hueles y 1 que saboreas",
]


REMINDER_DEFAULT_HOUR = 20
REMINDER_DEFAULT_MINUTE = 0
REMINDER_TITLE = "Recordatorio de registro emocional"
REMINDER_BODY = "¿Cómo te sientes hoy? Toma un momento para registrar tus emociones."

STRESS_ALERT_TYPE = "stress_pattern"
STRESS_ALERT_TITLE = "¡Alerta de patrón de estrés!"
STRESS_ALERT_BODY = (
    "Hemos detectado un patrón de estrés en tus registros. "
    "Revisa las estrategias recomendadas para ayudarte a manejarlo."
)
# Minimum spacing between two in-app stress alerts for the same user.
STRESS_ALERT_COOLDOWN = timedelta(hours=24)

@dataclass
class StressPatternResult:
    weekly_stress_count: int
    stressful_days: Dict[str, int] = field(default_factory=dict)
    stressful_hours: Dict[str, int] = field(default_factory=dict)
    has_stress_pattern: bool = False
    strategies: List[str] = field(default_factory=list)


def is_stress_record(emotion: str, intensity: int) -> bool:
    return emotion in STRESS_EMOTIONS and intensity >= STRESS_MIN_INTENSITY


def analyze_stress_patterns(records: Sequence, now: Optional[datetime] = None) -> StressPatternResult:
    """Count stress-type records of the last week by weekday and by hour.

    ``records`` only need ``emotion``, ``intensity`` and ``recorded_at``.
    """
    now = now or datetime.utcnow()
    window_start = now - timedelta(days=STRESS_WINDOW_DAYS)
    recent = [
        record
        for record in records
        if record.recorded_at >= window_start and is_stress_record(record.emotion, record.intensity)
    ]

    stressful_days: Dict[str, int] = {}
    stressful_hours: Dict[str, int] = {}
    for record in recent:
        day_name = WEEKDAY_NAMES[record.recorded_at.weekday()]
        hour = str(record.recorded_at.hour)
        stressful_days[day_name] = stressful_days.get(day_name, 0) + 1
        stressful_hours[hour] = stressful_hours.get(hour, 0) + 1

    has_pattern = len(recent) >= STRESS_PATTERN_THRESHOLD
    return StressPatternResult(
        weekly_stress_count=len(recent),
        stressful_days=stressful_days,
        stressful_hours=stressful_hours,
        has_stress_pattern=has_pattern,
        strategies=list(STRESS_STRATEGIES) if has_pattern else [],
    )


def next_daily_reminder_at(hour: int, minute: int, now: datetime) -> datetime:
    """Today at ``hour:minute``, or tomorrow when that moment has passed."""
    fire_at = datetime.combine(now.date(), time(hour, minute))
    if fire_at <= now:
        fire_at += timedelta(days=1)
    return fire_at


def reminder_settings(reminder, now: datetime) -> dict:
    enabled = bool(reminder.enabled) if reminder is not None else False
    hour = reminder.hour if reminder is not None else REMINDER_DEFAULT_HOUR
    minute = reminder.minute if reminder is not None else REMINDER_DEFAULT_MINUTE
    settings = {"enabled": enabled, "hour": hour, "minute": minute, "next_reminder": None}
    if enabled:
        settings["next_reminder"] = {
            "title": REMINDER_TITLE,
            "body": REMINDER_BODY,
            "fire_at": next_daily_reminder_at(hour, minute, now).isoformat(),
            "repeats": "daily",
            "data": {"screen": "emotions"},
        }
    return settings


def stress_alert(result: StressPatternResult) -> Optional[dict]:
    if not result.has_stress_pattern:
        return None
    return {
        "title": STRESS_ALERT_TITLE,
        "body": STRESS_ALERT_BODY,
        "data": {"screen": "emotions"},
    }


def should_record_stress_alert(last_alert_at: Optional[datetime], now: datetime) -> bool:
    return last_alert_at is None or now - last_alert_at >= STRESS_ALERT_COOLDOWN
