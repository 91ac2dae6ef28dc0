"""
backend/lounge/services/events.py

Event emitter: pushes events to a Redis queue for consumers
(staff notifications, reconciliation dashboards).

Queue `events:p2p`:
- booking_created: a payment produced its booking rows
- payment_unreconciled: money captured without a reservation, needs a human
"""

import json
import time
import logging

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

EVENTS_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit an event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    Failures are logged and never propagate to the caller.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(EVENTS_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {EVENTS_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
