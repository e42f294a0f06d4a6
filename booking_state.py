"""
Derived lifecycle phases for slots and bookings, and the next actions a caller
should take from each one.

Phases are never stored. They are recomputed from the latest supplier snapshot
every time a response is built.
"""

from enum import Enum
from typing import Iterator, List, Optional, Tuple

from booking_schemas import AvailabilityDetail, Booking, BookingQuestion, NextAction


class SlotPhase(str, Enum):
    SELECTED = "SELECTED"
    OPTIONS_INCOMPLETE = "OPTIONS_INCOMPLETE"
    OPTIONS_COMPLETE = "OPTIONS_COMPLETE"
    PRICING_UNSET = "PRICING_UNSET"
    INVALID = "INVALID"
    VALID = "VALID"


class BookingPhase(str, Enum):
    DRAFT = "DRAFT"
    NEEDS_QUESTIONS = "NEEDS_QUESTIONS"
    READY_TO_COMMIT = "READY_TO_COMMIT"
    NEEDS_PAYMENT = "NEEDS_PAYMENT"
    COMMITTED_PENDING = "COMMITTED_PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


AWAITING_PAYMENT = "AWAITING_PAYMENT"
TERMINAL_FAILURE_STATES = ("CANCELLED", "REJECTED")


def compute_slot_phase(slot: AvailabilityDetail) -> SlotPhase:
    if slot.options is None:
        return SlotPhase.SELECTED
    if not slot.options_complete:
        return SlotPhase.OPTIONS_INCOMPLETE
    if slot.is_valid:
        return SlotPhase.VALID
    if not slot.pricing_categories:
        return SlotPhase.OPTIONS_COMPLETE
    if sum(cat.units for cat in slot.pricing_categories) == 0:
        return SlotPhase.PRICING_UNSET
    return SlotPhase.INVALID


def compute_booking_phase(booking: Booking) -> BookingPhase:
    """Map the live booking fields onto a single phase. Pure; no caching."""
    if booking.state == "CONFIRMED":
        return BookingPhase.CONFIRMED
    if booking.state == "PENDING":
        return BookingPhase.COMMITTED_PENDING
    if booking.state in TERMINAL_FAILURE_STATES:
        return BookingPhase.CANCELLED
    if not booking.items:
        return BookingPhase.DRAFT
    if not booking.can_commit:
        return BookingPhase.NEEDS_QUESTIONS
    if booking.payment_state == AWAITING_PAYMENT:
        return BookingPhase.NEEDS_PAYMENT
    return BookingPhase.READY_TO_COMMIT


# --- Question Collector ---

def iter_questions(booking: Booking) -> Iterator[Tuple[str, Optional[str], BookingQuestion]]:
    """Yield (scope, owner label, question) across booking, item and person scopes."""
    for q in booking.questions:
        yield "booking", None, q
    for item in booking.items:
        for q in item.questions:
            yield "item", item.product_name or "Experience", q
        for person in item.persons:
            for q in person.questions:
                yield "person", person.pricing_category_label or "Guest", q


def collect_missing_questions(booking: Booking) -> List[str]:
    """Labels of required questions that still have no answer.

    Person-scoped labels are prefixed with the person's category, e.g. "Adult: NAME_GIVEN".
    """
    missing = []
    for scope, owner, q in iter_questions(booking):
        if q.required and not q.answered:
            missing.append(f"{owner}: {q.label}" if scope == "person" else q.label)
    return missing


# --- Next-Action Advisor ---

def _action(tool: str, reason: str) -> NextAction:
    return NextAction(tool=tool, reason=reason)


def next_actions_for_slot(phase: SlotPhase) -> List[NextAction]:
    if phase in (SlotPhase.SELECTED, SlotPhase.OPTIONS_INCOMPLETE):
        return [_action("answer_slot_options", "Answer the remaining required options for this slot")]
    if phase == SlotPhase.OPTIONS_COMPLETE:
        return [_action("get_slot_pricing", "Options complete; fetch pricing categories")]
    if phase in (SlotPhase.PRICING_UNSET, SlotPhase.INVALID):
        return [_action("set_slot_pricing", "Assign participant units within each category's min/max")]
    return [
        _action("create_booking", "Slot is valid; open a booking basket if you have none"),
        _action("add_to_booking", "Attach this slot to the booking"),
    ]


def next_actions_for_booking(phase: BookingPhase) -> List[NextAction]:
    if phase == BookingPhase.DRAFT:
        return [_action("add_to_booking", "Add a configured availability slot to this booking")]
    if phase == BookingPhase.NEEDS_QUESTIONS:
        return [
            _action("get_booking_questions", "See which required questions are unanswered"),
            _action("answer_booking_questions", "Answer the required questions"),
        ]
    if phase == BookingPhase.READY_TO_COMMIT:
        return [_action("commit_booking", "Booking is ready to commit")]
    if phase == BookingPhase.NEEDS_PAYMENT:
        return [_action("get_payment_info", "Payment is required before commit")]
    if phase == BookingPhase.COMMITTED_PENDING:
        return [_action("get_booking_status", "Check again later for supplier confirmation")]
    # CONFIRMED and CANCELLED are terminal
    return []


def dump_actions(actions: List[NextAction]) -> List[dict]:
    return [a.model_dump() for a in actions]
