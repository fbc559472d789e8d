# Overview: Fire-and-forget domain event emission.

"""
Domain events (ticket.created, ticket.status_changed, part.updated,
payment.recorded, return.created, return.approved, ...) are handed to the sink
registered in app.extensions["event_sink"] AFTER the unit of work commits.

A sink is any object with `emit(event_type: str, payload: dict)`. The core
never waits for an acknowledgement: a failing sink is logged and ignored.
"""

from __future__ import annotations

import logging

from flask import current_app, has_app_context


logger = logging.getLogger(__name__)


class LoggingEventSink:
    """Default sink: one INFO line per event."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logging.getLogger("repairdesk.events")

    def emit(self, event_type: str, payload: dict) -> None:
        self.log.info("event %s %s", event_type, payload)


def get_event_sink():
    if not has_app_context():
        return None
    return current_app.extensions.get("event_sink")


def emit_event(event_type: str, payload: dict) -> None:
    sink = get_event_sink()
    if sink is None:
        return
    try:
        sink.emit(event_type, payload)
    except Exception:
        logger.exception("Event sink failed for %s", event_type)
