"""Status transitions for the deals pipeline and purchase orders.

"Next" moves a record exactly one position forward. Leads stop at
Proposal Sent: Won and Lost are closing decisions, entered only through
``mark_lead_won`` and ``mark_lead_lost``.
"""

import logging
from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

from bizdesk.core.exceptions import InvalidStageTransitionError, ValidationError
from bizdesk.models.enums import LeadStatus, PurchaseOrderStatus
from bizdesk.models.records import Lead, PurchaseOrder

if TYPE_CHECKING:
    from bizdesk.services.data_service import DataService

logger = logging.getLogger(__name__)

LEAD_STAGE_ORDER: list[LeadStatus] = [
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.QUALIFIED,
    LeadStatus.PROPOSAL,
]

PURCHASE_ORDER_STAGE_ORDER: list[PurchaseOrderStatus] = [
    PurchaseOrderStatus.NEEDED,
    PurchaseOrderStatus.ORDERED,
    PurchaseOrderStatus.TRANSIT,
    PurchaseOrderStatus.REACHED,
]

_CLOSED_LEAD_STATUSES = (LeadStatus.WON, LeadStatus.LOST)

LOST_MARKER = "[Lost]"


def next_status(current: Any, order: Sequence[Enum]) -> Any:
    """Return the status after ``current`` in ``order``, or None at the end.

    Statuses outside ``order`` (closed deals, unknown values) have no next.
    """
    if current not in order:
        return None
    index = list(order).index(current)
    if index + 1 >= len(order):
        return None
    return order[index + 1]


def _stage_value(status: Any) -> str:
    return str(getattr(status, "value", status))


async def advance_lead(service: "DataService", lead: Lead) -> Lead:
    """Move a lead to its next pipeline stage.

    Raises:
        InvalidStageTransitionError: If the lead is at Proposal Sent or closed.
    """
    target = next_status(lead.status, LEAD_STAGE_ORDER)
    if target is None:
        raise InvalidStageTransitionError(current_stage=_stage_value(lead.status))
    await service.update_lead_status(lead.id, target)
    logger.info(
        "Lead advanced",
        extra={"lead_id": lead.id, "from_stage": _stage_value(lead.status), "to_stage": target.value},
    )
    return lead.copy_with(status=target)


async def advance_purchase_order(service: "DataService", order: PurchaseOrder) -> PurchaseOrder:
    """Move a purchase order one step towards Items Reached.

    Raises:
        InvalidStageTransitionError: If the order has already reached its terminal status.
    """
    target = next_status(order.status, PURCHASE_ORDER_STAGE_ORDER)
    if target is None:
        raise InvalidStageTransitionError(current_stage=_stage_value(order.status))
    await service.update_purchase_order_status(order.id, target)
    return order.copy_with(status=target)


async def mark_lead_won(service: "DataService", lead: Lead) -> Lead:
    if lead.status in _CLOSED_LEAD_STATUSES:
        raise InvalidStageTransitionError(
            current_stage=_stage_value(lead.status), target_stage=LeadStatus.WON.value
        )
    await service.update_lead_status(lead.id, LeadStatus.WON)
    return lead.copy_with(status=LeadStatus.WON)


async def mark_lead_lost(service: "DataService", lead: Lead, reason: str) -> Lead:
    """Close a lead as lost, recording the reason in its notes.

    The reason is appended on a new line; existing notes are kept.

    Raises:
        ValidationError: If ``reason`` is blank.
        InvalidStageTransitionError: If the lead is already closed.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to mark a lead as lost", field="reason")
    if lead.status in _CLOSED_LEAD_STATUSES:
        raise InvalidStageTransitionError(
            current_stage=_stage_value(lead.status), target_stage=LeadStatus.LOST.value
        )
    marker = f"{LOST_MARKER} {reason}"
    notes = f"{lead.notes}\n{marker}" if lead.notes else marker
    return await service.update_lead(lead.copy_with(status=LeadStatus.LOST, notes=notes))
