from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    BROWSING = "browsing"
    CART = "cart"
    COLLECTING_CUSTOMER_INFO = "collecting_customer_info"
    COLLECTING_NAME = "collecting_name"
    COLLECTING_ADDRESS = "collecting_address"
    REVIEWING_CUSTOMER_INFO = "reviewing_customer_info"
    SELECTING_PAYMENT = "selecting_payment"
    CONFIRMING = "confirming"
    TRACKING = "tracking"
    VIEWING_ORDERS = "viewing_orders"
    SUPPORT = "support"


# Free text in these states goes to the state's own handler before any
# keyword matching.
CONTINUATION_STATES = frozenset(
    {
        SessionState.COLLECTING_CUSTOMER_INFO,
        SessionState.COLLECTING_NAME,
        SessionState.COLLECTING_ADDRESS,
        SessionState.REVIEWING_CUSTOMER_INFO,
        SessionState.SUPPORT,
        SessionState.TRACKING,
    }
)


def coerce_state(value: str | None) -> SessionState:
    """Map a stored state string to the enum; unknown or legacy values recover to idle."""
    if not value:
        return SessionState.IDLE
    try:
        return SessionState(value)
    except ValueError:
        logger.warning("Unknown session state %r, resetting to idle", value, extra={"event": "session_state_unknown"})
        return SessionState.IDLE
