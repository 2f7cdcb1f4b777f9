from __future__ import annotations

from typing import List

# Matched as plain substrings; order here is the order reported to admins.
RISK_KEYWORDS = [
    "suicidio",
    "suicidarme",
    "matarme",
    "quitarme la vida",
    "no quiero vivir",
    "acabar con mi vida",
    "terminar con todo",
    "ya no aguanto más",
    "mejor morir",
    "desaparecer para siempre",
    "no vale la pena seguir",
]


def find_keywords(text: str, keywords: List[str]) -> List[str]:
    normalized = (text or "").lower()
    return [keyword for keyword in keywords if keyword.lower() in normalized]


def detect_risk(message: str) -> dict:
    detected = find_keywords(message, RISK_KEYWORDS)
    return {
        "is_at_risk": bool(detected),
        "detected_keywords": detected,
    }
