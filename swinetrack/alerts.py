# alerts.py
"""Keyword classification of device alerts for list display and filtering."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .backend import AlertRow

CRITICAL = "critical"
WARNING = "warning"

_CRITICAL_DB_SEVERITIES = ("critical", "high", "severe", "danger")

# Checked in order; the first matching category wins.
CATEGORY_KEYWORDS = (
    ("ammonia", ("ammonia", "gas")),
    ("temperature", ("temp", "fever", "heat")),
    ("humidity", ("humid", "water")),
    ("feed", ("feed", "food")),
)

INSTRUCTIONS = {
    "ammonia": [
        "Clean the pen and remove manure immediately.",
        "Wash down the floor to reduce the smell.",
        "Ensure air can flow freely (remove obstructions).",
    ],
    "temperature": [
        "Bathe or mist the pigs with water to cool them.",
        "Refill the drinking trough with fresh water.",
        "Check pigs for loss of appetite or lethargy.",
    ],
    "humidity": [
        "Scrape standing water off the floor.",
        "Fix any leaking nipple drinkers or pipes.",
        "Improve air circulation to dry the pen.",
    ],
    "default": [
        "Review the notification details.",
        "Monitor the system status.",
    ],
}


def _text(alert: AlertRow) -> str:
    return f"{alert.alert_type or ''} {alert.message or ''}".lower()


def classify_severity(alert: AlertRow) -> str:
    kind = (alert.alert_type or "").lower().strip()
    msg = (alert.message or "").lower()
    db_sev = (alert.severity or "").lower().strip()

    if "ammonia" in kind or "ammonia" in msg:
        return CRITICAL
    if "temp" in kind or "fever" in msg or "hot" in msg:
        return CRITICAL
    if any(s in db_sev for s in _CRITICAL_DB_SEVERITIES):
        return CRITICAL
    return WARNING


def categorize(alert: AlertRow) -> Optional[str]:
    text = _text(alert)
    for category, words in CATEGORY_KEYWORDS:
        if any(w in text for w in words):
            return category
    return None


def instructions_for(alert: AlertRow) -> List[str]:
    text = _text(alert)
    if "ammonia" in text:
        return INSTRUCTIONS["ammonia"]
    if "temp" in text or "fever" in text:
        return INSTRUCTIONS["temperature"]
    if "humid" in text:
        return INSTRUCTIONS["humidity"]
    return INSTRUCTIONS["default"]


def filter_alerts(alerts: Iterable[AlertRow], severity: str = "all") -> List[AlertRow]:
    if severity == "all":
        return list(alerts)
    return [a for a in alerts if classify_severity(a) == severity]
