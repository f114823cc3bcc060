"""
Fixture status mapping.

football-data.org reports a detailed match status; the league only cares
whether a fixture is still to be played, in progress, or done.
"""

import logging

logger = logging.getLogger(__name__)

SCHEDULED = "SCHEDULED"
LIVE = "LIVE"
FINISHED = "FINISHED"

STATES = (SCHEDULED, LIVE, FINISHED)

# Raw statuses as reported by the API
SCHEDULED_STATUSES = {"SCHEDULED", "TIMED", "POSTPONED", "SUSPENDED", "CANCELLED"}
LIVE_STATUSES = {"IN_PLAY", "PAUSED", "LIVE", "EXTRA_TIME", "PENALTY_SHOOTOUT"}
FINISHED_STATUSES = {"FINISHED", "AWARDED"}


def map_api_status(raw_status):
    """Map a raw API status onto SCHEDULED, LIVE or FINISHED"""
    status = (raw_status or "").upper()
    if status in FINISHED_STATUSES:
        return FINISHED
    if status in LIVE_STATUSES:
        return LIVE
    if status not in SCHEDULED_STATUSES:
        logger.warning(f"Unknown fixture status '{raw_status}', treating as scheduled")
    return SCHEDULED

