"""
RFQ and quote state machines.

Each machine is an explicit table of edges. An edge is either triggered by a
person (manager or provider) or applied automatically by the service in
response to another event (first quote received, sibling accepted, deadline
passed). Nothing here touches the database.
"""

import enum
from dataclasses import dataclass
from datetime import datetime

from marketplace.core.exceptions import InvalidTransitionException
from marketplace.models.quote import QuoteStatus
from marketplace.models.rfq import RfqStatus
from marketplace.services.deadlines import is_past


class Trigger(str, enum.Enum):
    """Who may fire a transition."""

    MANAGER = "manager"
    PROVIDER = "provider"
    SYSTEM = "system"


@dataclass(frozen=True)
class Edge:
    target: enum.Enum
    trigger: Trigger
    rule: str


RFQ_TRANSITIONS: dict[RfqStatus, dict[RfqStatus, Edge]] = {
    RfqStatus.DRAFT: {
        RfqStatus.SENT: Edge(RfqStatus.SENT, Trigger.MANAGER, "requires at least one invited provider"),
        RfqStatus.CANCELLED: Edge(RfqStatus.CANCELLED, Trigger.MANAGER, "manager cancels"),
        RfqStatus.EXPIRED: Edge(RfqStatus.EXPIRED, Trigger.SYSTEM, "quote deadline passed"),
    },
    RfqStatus.SENT: {
        RfqStatus.QUOTES_RECEIVED: Edge(RfqStatus.QUOTES_RECEIVED, Trigger.SYSTEM, "first quote submitted"),
        RfqStatus.AWARDED: Edge(RfqStatus.AWARDED, Trigger.SYSTEM, "a quote was accepted"),
        RfqStatus.CANCELLED: Edge(RfqStatus.CANCELLED, Trigger.MANAGER, "manager cancels"),
        RfqStatus.EXPIRED: Edge(RfqStatus.EXPIRED, Trigger.SYSTEM, "quote deadline passed"),
    },
    RfqStatus.QUOTES_RECEIVED: {
        RfqStatus.AWARDED: Edge(RfqStatus.AWARDED, Trigger.SYSTEM, "a quote was accepted"),
        RfqStatus.EXPIRED: Edge(RfqStatus.EXPIRED, Trigger.SYSTEM, "quote deadline passed"),
    },
    RfqStatus.AWARDED: {},
    RfqStatus.CANCELLED: {},
    RfqStatus.EXPIRED: {},
}

QUOTE_TRANSITIONS: dict[QuoteStatus, dict[QuoteStatus, Edge]] = {
    QuoteStatus.PENDING: {
        QuoteStatus.ACCEPTED: Edge(QuoteStatus.ACCEPTED, Trigger.MANAGER, "manager accepts"),
        QuoteStatus.REJECTED: Edge(QuoteStatus.REJECTED, Trigger.MANAGER, "manager rejects or sibling accepted"),
        QuoteStatus.WITHDRAWN: Edge(QuoteStatus.WITHDRAWN, Trigger.PROVIDER, "provider withdraws"),
    },
    QuoteStatus.SUBMITTED: {
        QuoteStatus.ACCEPTED: Edge(QuoteStatus.ACCEPTED, Trigger.MANAGER, "manager accepts"),
        QuoteStatus.REJECTED: Edge(QuoteStatus.REJECTED, Trigger.MANAGER, "manager rejects or sibling accepted"),
        QuoteStatus.WITHDRAWN: Edge(QuoteStatus.WITHDRAWN, Trigger.PROVIDER, "provider withdraws"),
        QuoteStatus.EXPIRED: Edge(QuoteStatus.EXPIRED, Trigger.SYSTEM, "validity period elapsed"),
    },
    QuoteStatus.ACCEPTED: {},
    QuoteStatus.REJECTED: {},
    QuoteStatus.WITHDRAWN: {},
    QuoteStatus.EXPIRED: {},
}

TERMINAL_RFQ_STATUSES = frozenset(s for s, edges in RFQ_TRANSITIONS.items() if not edges)
TERMINAL_QUOTE_STATUSES = frozenset(s for s, edges in QUOTE_TRANSITIONS.items() if not edges)

# Derived status sets used by the service queries
RFQ_EXPIRABLE_STATUSES = frozenset(s for s, edges in RFQ_TRANSITIONS.items() if RfqStatus.EXPIRED in edges)
RFQ_AWARDABLE_STATUSES = frozenset(s for s, edges in RFQ_TRANSITIONS.items() if RfqStatus.AWARDED in edges)
RFQ_CANCELLABLE_STATUSES = frozenset(s for s, edges in RFQ_TRANSITIONS.items() if RfqStatus.CANCELLED in edges)
RFQ_OPEN_FOR_QUOTES = frozenset({RfqStatus.SENT, RfqStatus.QUOTES_RECEIVED})

QUOTE_OPEN_STATUSES = frozenset({QuoteStatus.PENDING, QuoteStatus.SUBMITTED})
QUOTE_EXPIRABLE_STATUSES = frozenset(s for s, edges in QUOTE_TRANSITIONS.items() if QuoteStatus.EXPIRED in edges)

# A provider holds at most one of these per RFQ
QUOTE_ACTIVE_STATUSES = frozenset({QuoteStatus.PENDING, QuoteStatus.SUBMITTED, QuoteStatus.ACCEPTED})

# Shown side by side; drafts and withdrawn offers are left out
QUOTE_COMPARABLE_STATUSES = frozenset(
    {QuoteStatus.SUBMITTED, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED}
)


def _check(
    table: dict,
    entity_type: str,
    current: enum.Enum,
    target: enum.Enum,
    allowed_triggers: frozenset[Trigger] | None,
) -> Edge:
    edge = table[current].get(target)
    if edge is None:
        rule = "status is final" if not table[current] else None
        raise InvalidTransitionException(entity_type, current.value, target.value, rule)
    if allowed_triggers is not None and edge.trigger not in allowed_triggers:
        raise InvalidTransitionException(
            entity_type,
            current.value,
            target.value,
            f"transition is applied automatically ({edge.rule})",
        )
    return edge


def check_rfq_transition(
    current: RfqStatus,
    target: RfqStatus,
    allowed_triggers: frozenset[Trigger] | None = None,
) -> Edge:
    """
    Validate an RFQ status change.

    Args:
        current: Status the RFQ is in now
        target: Requested status
        allowed_triggers: Restrict to edges fired by these actors; None allows all

    Returns:
        Edge: The matching edge

    Raises:
        InvalidTransitionException: No such edge, or it belongs to another actor
    """
    return _check(RFQ_TRANSITIONS, "RFQ", current, target, allowed_triggers)


def check_quote_transition(
    current: QuoteStatus,
    target: QuoteStatus,
    allowed_triggers: frozenset[Trigger] | None = None,
) -> Edge:
    """Validate a quote status change. See ``check_rfq_transition``."""
    return _check(QUOTE_TRANSITIONS, "Quote", current, target, allowed_triggers)


def rfq_should_expire(status: RfqStatus, quote_deadline: datetime | None, now: datetime) -> bool:
    """True when the sweep must move this RFQ to ``expired``."""
    return status in RFQ_EXPIRABLE_STATUSES and is_past(quote_deadline, now)


def quote_should_expire(status: QuoteStatus, valid_until: datetime | None, now: datetime) -> bool:
    """True when the sweep must move this quote to ``expired``."""
    return status in QUOTE_EXPIRABLE_STATUSES and is_past(valid_until, now)
