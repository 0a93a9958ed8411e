# billgen/domain/services/bill_workflow.py
"""
Bill lifecycle rules.

Status lifecycle:
  DRAFT → SENT → PAID

Transitions only move forward (DRAFT → PAID is allowed, a bill can be paid
on the spot); nothing moves backward. Once a bill is created only its status
and the annotation fields ``terms`` / ``notes`` may change; numbering,
monetary and party fields are frozen.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from billgen.domain.errors import (
    BillValidationError,
    ImmutableFieldViolation,
    InvalidStatusTransition,
)
from billgen.domain.models.bill import BillStatus

logger = logging.getLogger("bill_workflow")


# ---------------------------------------------------------------------------
# Valid state transitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[str, list[str]] = {
    BillStatus.DRAFT.value: [BillStatus.SENT.value, BillStatus.PAID.value],
    BillStatus.SENT.value: [BillStatus.PAID.value],
    BillStatus.PAID.value: [],  # terminal
}

ALL_STATUSES = set(VALID_TRANSITIONS.keys())

MUTABLE_FIELDS = frozenset({"status", "terms", "notes"})


def validate_status_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidStatusTransition if the transition is not allowed.

    Re-sending the current status is a no-op, not an error.
    """
    if new_status not in ALL_STATUSES:
        raise BillValidationError(
            f"Unknown status '{new_status}'. Allowed: {sorted(ALL_STATUSES)}",
            field="status",
        )
    if new_status == current_status:
        return
    allowed = VALID_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        logger.info("Rejected status change %s -> %s", current_status, new_status)
        raise InvalidStatusTransition(
            f"Cannot transition from '{current_status}' to '{new_status}'. "
            f"Allowed: {allowed}",
            field="status",
        )


def validate_patch(current_status: str, patch: Mapping[str, Any]) -> dict[str, Any]:
    """
    Check an update request against the lifecycle rules and return the
    changes to apply. Any field outside MUTABLE_FIELDS is rejected as a whole;
    nothing is applied partially.
    """
    frozen = [key for key in patch if key not in MUTABLE_FIELDS]
    if frozen:
        logger.info("Rejected update of frozen field(s) %s", frozen)
        raise ImmutableFieldViolation(
            f"Field '{frozen[0]}' cannot be changed after a bill is generated",
            field=frozen[0],
        )

    changes = dict(patch)
    if "status" in changes:
        status = changes["status"]
        if status is None:
            raise BillValidationError("status cannot be null", field="status")
        status = status.value if isinstance(status, BillStatus) else str(status)
        validate_status_transition(current_status, status)
        changes["status"] = status
    return changes
