"""Prometheus instruments for credential and session events."""

from __future__ import annotations

from prometheus_client import Counter

AUTH_EVENTS = Counter(
    "identity_auth_events_total",
    "Credential and session lifecycle events by outcome.",
    ["event", "outcome"],
)

EMAILS_SENT = Counter(
    "identity_emails_total",
    "Account lifecycle emails handed to the transport.",
    ["template", "delivered"],
)


def record_auth_event(event: str, outcome: str) -> None:
    AUTH_EVENTS.labels(event=event, outcome=outcome).inc()
