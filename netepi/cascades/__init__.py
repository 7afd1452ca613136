"""
Transmission Cascades
=====================
Append-only record of who infected whom during a simulation run.
"""

from netepi.cascades.tracker import (
    EVENT_COLUMNS,
    TransmissionEvent,
    TransmissionLog,
    transmission_summary,
)

__all__ = [
    "EVENT_COLUMNS",
    "TransmissionEvent",
    "TransmissionLog",
    "transmission_summary",
]
