"""Admin actions: edit the event text and reset the counter."""
import logging
import secrets

from .errors import AuthorizationError
from .models import AdminRequest, CounterState
from .store import StateStore

logger = logging.getLogger(__name__)


def check_admin_password(password: str, expected: str) -> bool:
    """Plain equality check of the shared admin secret."""
    return secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


async def apply_admin_action(
    store: StateStore,
    admin_password: str,
    action: AdminRequest
) -> CounterState:
    """
    Apply an admin action.

    The event text is applied first (when given), then the reset.

    Args:
        store: State store to mutate
        admin_password: Configured shared secret
        action: Validated admin request

    Returns:
        State after the action

    Raises:
        AuthorizationError: If the password does not match; nothing is changed
    """
    if not check_admin_password(action.password, admin_password):
        logger.warning("Admin action rejected: invalid password")
        raise AuthorizationError("Invalid admin password")

    if action.event_text is not None:
        await store.set_event_text(action.event_text)
        logger.info("Event text updated")

    if action.reset_count:
        await store.reset()

    return await store.get()
