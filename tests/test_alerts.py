"""Tests for setupdesk.core.alerts."""

from setupdesk.backend.models import Alert
from setupdesk.core.alerts import prioritize_alerts


def test_priority_then_arrival_order():
    alerts = [
        Alert("A", priority="LOW"),
        Alert("B", priority="HIGH"),
        Alert("C", priority="MEDIUM"),
        Alert("D", priority="HIGH"),
    ]
    assert [a.title for a in prioritize_alerts(alerts)] == ["B", "D", "C", "A"]


def test_unknown_priority_last_and_kept():
    alerts = [Alert("X", priority="URGENT"), Alert("Y", priority="LOW"), Alert("Z", priority="high")]
    assert [a.title for a in prioritize_alerts(alerts)] == ["Z", "Y", "X"]


def test_empty():
    assert prioritize_alerts([]) == []
