"""Alert prioritizer — display order for trade-management alerts."""

from typing import Iterable

from setupdesk.backend.models import Alert

PRIORITY_RANK: dict[str, int] = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}


def prioritize_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Order alerts HIGH, MEDIUM, LOW, keeping arrival order within a level.

    Alerts with an unrecognised priority go last.  Nothing is dropped.
    """
    return sorted(
        alerts,
        key=lambda a: PRIORITY_RANK.get(a.priority.upper(), len(PRIORITY_RANK)),
    )
