"""Debt status state machine"""

from typing import Dict, FrozenSet
from debt_gateway.domain.models import DebtStatus
from debt_gateway.domain.exceptions import InvalidState

# NOT_PAID is the only state with outgoing edges; PAID and CANCELLED are terminal
ALLOWED_TRANSITIONS: Dict[DebtStatus, FrozenSet[DebtStatus]] = {
    DebtStatus.NOT_PAID: frozenset({DebtStatus.PAID, DebtStatus.CANCELLED}),
    DebtStatus.PAID: frozenset(),
    DebtStatus.CANCELLED: frozenset(),
}


def ensure_transition(current: str, target: DebtStatus) -> DebtStatus:
    """
    Validate a debt status change.

    Raises:
        InvalidState: When target is not reachable from current
    """
    current_status = DebtStatus(current)
    if target not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidState(
            f"Debt is {current_status.value} and cannot become {target.value}"
        )
    return target


def ensure_payable(current: str) -> None:
    """Debt must still be open before an OTP is issued or verified"""
    ensure_transition(current, DebtStatus.PAID)
