import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from booking_errors import ERROR_MESSAGES, ERROR_RECOVERY, ErrorCode, classify_error, is_payment_unavailable
from booking_schemas import Booking, BookingQuestion, QuestionAnswer, ToolError, ToolResponse
from booking_state import (
    TERMINAL_FAILURE_STATES,
    BookingPhase,
    collect_missing_questions,
    compute_booking_phase,
    dump_actions,
    next_actions_for_booking,
)
from config import Settings
from formatting import format_booking_summary, format_money, format_unanswered_questions
from payments.checkout import build_checkout_url, generate_checkout_token
from supplier_client import BookingNotFoundError, SupplierClient

logger = logging.getLogger(__name__)

SLOT_NOT_READY_TEXT = """## Slot Not Ready

The availability slot could not be added because it is not fully configured.

**Required steps before add_to_booking:**
1. `get_slot_options`: check/answer configuration options
2. `get_slot_pricing`: get pricing categories
3. `set_slot_pricing`: set participant counts (e.g., 2 Adults)
4. Verify `isValid = true` in the response

Please complete these steps first, then try add_to_booking again."""

PAYMENT_NOT_COMPLETED_TEXT = """## Payment Not Completed

The booking cannot be committed because payment has not been processed yet.

Use `get_payment_info` to get the payment details. The consumer must complete payment before the booking can be committed.

Once payment is confirmed, try `commit_booking` again."""


def question_to_structured(q: BookingQuestion) -> Dict:
    return {
        "id": q.id,
        "label": q.label,
        "type": q.type,
        "isRequired": q.required,
        "answerValue": q.answer_value,
        "autoCompleteValue": q.auto_complete_value,
        "options": [{"value": c.value, "label": c.label} for c in q.choices],
    }


def items_to_structured(booking: Booking) -> List[Dict]:
    return [
        {
            "name": item.product_name or "Experience",
            "date": item.date,
            "startTime": item.start_time,
            "price": format_money(item.total_price, booking.currency),
        }
        for item in booking.items
    ]


def booking_to_structured(booking: Booking) -> Dict:
    phase = compute_booking_phase(booking)
    availability_questions = []
    person_questions = []
    for item in booking.items:
        if item.questions:
            availability_questions.append({
                "experienceName": item.product_name or "Experience",
                "questions": [question_to_structured(q) for q in item.questions],
            })
        for person in item.persons:
            if person.questions:
                person_questions.append({
                    "personId": person.id,
                    "label": person.pricing_category_label or "Guest",
                    "questions": [question_to_structured(q) for q in person.questions],
                })

    return {
        "bookingId": booking.id,
        "bookingCode": booking.code,
        "state": booking.state,
        "canCommit": booking.can_commit,
        "bookingPhase": phase.value,
        "totalPrice": format_money(booking.total_price, booking.currency),
        "items": items_to_structured(booking),
        "bookingQuestions": [question_to_structured(q) for q in booking.questions],
        "availabilityQuestions": availability_questions,
        "personQuestions": person_questions,
        "voucherUrl": booking.voucher_url,
        "nextActions": dump_actions(next_actions_for_booking(phase)),
    }


def _coarse_status(booking: Booking) -> str:
    if booking.state == "CONFIRMED":
        return "confirmed"
    if booking.state == "PENDING":
        return "pending"
    if booking.state in TERMINAL_FAILURE_STATES:
        return "cancelled"
    if compute_booking_phase(booking) == BookingPhase.NEEDS_PAYMENT:
        return "payment_required"
    return "open"


@dataclass
class ConfirmationResult:
    booking: Booking
    attempts: int
    outcome: str  # "confirmed" | "failed" | "timeout"


class ConfirmationPoller:
    """
    Bounded, sequential wait for asynchronous supplier confirmation.
    Each attempt is a full re-fetch; it never blocks past max_attempts.
    """

    def __init__(
        self,
        client: SupplierClient,
        max_attempts: int = 15,
        interval_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.sleep = sleep

    def wait(self, booking_id: str) -> ConfirmationResult:
        booking = None
        for attempt in range(1, self.max_attempts + 1):
            booking = self.client.get_booking(booking_id)
            if booking is None:
                raise BookingNotFoundError(f"Booking not found: {booking_id}")
            logger.debug("Confirmation poll %d/%d for %s: %s", attempt, self.max_attempts, booking_id, booking.state)
            if booking.state == "CONFIRMED":
                logger.info("Booking %s confirmed after %d poll(s)", booking_id, attempt)
                return ConfirmationResult(booking, attempt, "confirmed")
            if booking.state in TERMINAL_FAILURE_STATES:
                logger.warning("Booking %s ended in %s while awaiting confirmation", booking_id, booking.state)
                return ConfirmationResult(booking, attempt, "failed")
            if attempt < self.max_attempts:
                self.sleep(self.interval_seconds)

        logger.info("Booking %s still %s after %d polls", booking_id, booking.state, self.max_attempts)
        return ConfirmationResult(booking, self.max_attempts, "timeout")


class TransactionManager:
    """
    Booking orchestrator: create basket -> attach valid slot -> answer questions
    -> resolve payment -> commit -> observe confirmation.

    All booking state lives with the supplier; each call re-reads what it needs
    and derives the phase and next actions from that fresh record.
    """

    def __init__(self, client: SupplierClient, settings: Optional[Settings] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.settings = settings or Settings()
        self.poller = ConfirmationPoller(
            client,
            max_attempts=self.settings.confirmation_max_attempts,
            interval_seconds=self.settings.confirmation_interval_seconds,
            sleep=sleep,
        )

    def _failure(self, error: Exception, booking_id: Optional[str], text_prefix: str) -> ToolResponse:
        classified = classify_error(error, {"bookingId": booking_id})
        return ToolResponse.failure(
            f"{text_prefix}: {classified.message}",
            classified.to_tool_error(),
            bookingId=booking_id,
        )

    def create_booking(self, auto_fill_questions: bool = True) -> ToolResponse:
        try:
            booking = self.client.create_booking(auto_fill_questions=auto_fill_questions)
        except Exception as e:
            return self._failure(e, None, "Error creating booking")

        text = (
            f"Booking created!\n\n{format_booking_summary(booking)}\n\n"
            "Next: Use add_to_booking to add an availability slot to this booking."
        )
        return ToolResponse(text=text, structured=booking_to_structured(booking))

    def add_to_booking(self, booking_id: str, slot_id: str) -> ToolResponse:
        try:
            booking = self.client.add_availability_to_booking(booking_id, slot_id)
        except Exception as e:
            classified = classify_error(e, {"bookingId": booking_id, "slotId": slot_id})
            if classified.code == ErrorCode.SLOT_NOT_CONFIGURED:
                text = SLOT_NOT_READY_TEXT
            else:
                text = f"Error adding to booking: {classified.message}"
            return ToolResponse.failure(text, classified.to_tool_error(), bookingId=booking_id, slotId=slot_id)

        ref = booking.code or booking.id
        if booking.can_commit:
            text = f"Availability added to booking {ref}. The booking is ready; check payment, then commit."
            actions = [
                {"tool": "get_payment_info", "reason": "Check if payment is required before committing"},
                {"tool": "commit_booking", "reason": "Finalize the booking"},
            ]
        else:
            text = (
                f"Availability added to booking {ref}. Questions need to be answered before the booking "
                "can be committed.\n\nUse get_booking_questions to see what information is needed."
            )
            actions = dump_actions(next_actions_for_booking(BookingPhase.NEEDS_QUESTIONS))

        structured = booking_to_structured(booking)
        structured["nextActions"] = actions
        return ToolResponse(text=text, structured=structured)

    def get_booking_questions(self, booking_id: str) -> ToolResponse:
        try:
            booking = self.client.get_booking_questions(booking_id)
        except Exception as e:
            return self._failure(e, booking_id, "Error fetching booking questions")

        missing = collect_missing_questions(booking)
        sections = [format_booking_summary(booking), format_unanswered_questions(booking), "\n---"]
        sections.append("Use answer_booking_questions to submit answers. Provide leadPassengerName, the question IDs and values.")

        if missing:
            actions = [{"tool": "answer_booking_questions", "reason": "Answer the required questions listed above"}]
        else:
            actions = [{"tool": "get_payment_info", "reason": "All questions answered; check if payment is required"}]

        structured = booking_to_structured(booking)
        structured["missing"] = missing
        structured["nextActions"] = actions
        return ToolResponse(text="\n".join(s for s in sections if s), structured=structured)

    def answer_booking_questions(
        self, booking_id: str, lead_passenger_name: str, answers: Sequence[QuestionAnswer]
    ) -> ToolResponse:
        # the supplier's auto-fill can't work out who is travelling, so the name is mandatory
        if not lead_passenger_name or not lead_passenger_name.strip():
            error = ToolError(
                code=ErrorCode.INVALID_INPUT.value,
                message=ERROR_MESSAGES[ErrorCode.INVALID_INPUT],
                next_actions=ERROR_RECOVERY[ErrorCode.INVALID_INPUT],
            )
            return ToolResponse.failure(
                f"## Lead Passenger Name Required\n\n{error.message}", error, bookingId=booking_id
            )

        try:
            booking = self.client.answer_booking_questions(booking_id, lead_passenger_name.strip(), answers)
        except Exception as e:
            return self._failure(e, booking_id, "Error answering booking questions")

        sections = [format_booking_summary(booking)]
        missing = collect_missing_questions(booking)
        if booking.can_commit:
            sections.append("\n**Booking is ready to commit!**")
            sections.append("Use get_payment_info to check if payment is needed, then commit_booking to finalize.")
            actions = [
                {"tool": "get_payment_info", "reason": "Check if payment is required before committing"},
                {"tool": "commit_booking", "reason": "Finalize the booking"},
            ]
        else:
            if missing:
                sections.append(f"\n**Still need answers for:** {', '.join(missing)}")
                sections.append("Call answer_booking_questions again with the remaining answers.")
            actions = [{"tool": "answer_booking_questions", "reason": "More required questions still need answers"}]

        structured = booking_to_structured(booking)
        structured["missing"] = missing
        structured["nextActions"] = actions
        return ToolResponse(text="\n".join(sections), structured=structured)

    def get_payment_info(self, booking_id: str) -> ToolResponse:
        try:
            intent = self.client.get_payment_intent(booking_id)
        except Exception as e:
            if is_payment_unavailable(e):
                logger.info("Booking %s is on-account; no payment intent", booking_id)
                return ToolResponse(
                    text=(
                        "## No Payment Required\n\nThis booking is on-account. No consumer payment is needed."
                        "\n\nUse commit_booking to finalize the booking directly."
                    ),
                    structured={
                        "bookingId": booking_id,
                        "status": "no_payment_required",
                        "nextActions": [
                            {"tool": "commit_booking", "reason": "No payment needed; commit the booking directly"}
                        ],
                    },
                )
            return self._failure(e, booking_id, "Error getting payment info")

        currency = intent.currency or self.settings.default_currency
        sections = ["## Payment Required", f"**Amount:** {intent.amount / 100:.2f} {currency} (minor units: {intent.amount})"]

        checkout_url = None
        if self.settings.checkout_enabled:
            token = generate_checkout_token(
                booking_id, self.settings.api_key, intent.amount, currency, self.settings.token_secret
            )
            checkout_url = build_checkout_url(self.settings.public_url, token)
            sections.append(f"\n**Checkout URL:** {checkout_url}")
            sections.append("Share this link with the customer to complete payment securely in their browser.")
            sections.append("The link expires in 15 minutes.")
        else:
            sections.append(f"**Payment Intent ID:** {intent.id}")
            sections.append(f"\n**Client Secret:** {intent.client_secret}")
            sections.append(f"**Publishable Key:** {intent.publishable_key}")
            sections.append("\nThe consumer needs to complete payment before the booking can be committed.")
        sections.append("\nOnce payment is confirmed, use commit_booking to finalize.")

        return ToolResponse(
            text="\n".join(sections),
            structured={
                "bookingId": booking_id,
                "status": "payment_required",
                "bookingPhase": BookingPhase.NEEDS_PAYMENT.value,
                "checkoutUrl": checkout_url,
                "payment": {
                    "amount": intent.amount / 100,
                    "amountMinor": intent.amount,
                    "currency": currency,
                    "paymentIntentId": intent.id,
                    "clientSecret": intent.client_secret,
                    "publishableKey": intent.publishable_key,
                },
                "nextActions": [
                    {"tool": "commit_booking", "reason": "Commit the booking after the consumer completes payment"}
                ],
            },
        )

    def _missing_after_failed_commit(self, booking_id: str) -> List[str]:
        try:
            return collect_missing_questions(self.client.get_booking_questions(booking_id))
        except Exception as e:
            logger.warning("Could not re-read questions for %s after failed commit: %s", booking_id, e)
            return []

    def commit_booking(self, booking_id: str, wait_for_confirmation: bool = False) -> ToolResponse:
        try:
            booking = self.client.commit_booking(booking_id)
        except Exception as e:
            classified = classify_error(e, {"bookingId": booking_id})
            if classified.code == ErrorCode.PAYMENT_REQUIRED:
                return ToolResponse.failure(PAYMENT_NOT_COMPLETED_TEXT, classified.to_tool_error(), bookingId=booking_id)
            if classified.code == ErrorCode.MISSING_REQUIRED_QUESTIONS:
                missing = self._missing_after_failed_commit(booking_id)
                listing = f"**Missing:** {', '.join(missing)}\n\n" if missing else ""
                text = (
                    f"## Required Questions Not Answered\n\n{classified.message}\n\n{listing}"
                    "**Fix:** Call `get_booking_questions` to see the unanswered questions, then use "
                    "`answer_booking_questions` with `leadPassengerName` to answer them. Check that "
                    "`canCommit = true` before calling commit_booking again."
                )
                return ToolResponse.failure(text, classified.to_tool_error(missing=missing), bookingId=booking_id)
            return ToolResponse.failure(
                f"Error committing booking: {classified.message}", classified.to_tool_error(), bookingId=booking_id
            )

        logger.info("Committed booking %s (state %s)", booking_id, booking.state)
        sections = ["## Booking Committed!", f"**Booking ID:** {booking.id}"]
        if booking.code:
            sections.append(f"**Booking Code:** {booking.code}")
        sections.append(f"**State:** {booking.state}")
        if booking.total_price is not None:
            sections.append(f"**Total:** {format_money(booking.total_price, booking.currency)}")

        attempts = None
        if booking.state == "PENDING" and wait_for_confirmation:
            sections.append("\nWaiting for supplier confirmation...")
            try:
                result = self.poller.wait(booking_id)
                booking, attempts = result.booking, result.attempts
                sections.append(f"**Status updated:** {booking.state}")
            except Exception as e:
                # the commit itself already succeeded; waiting is advisory
                logger.warning("Confirmation wait for %s failed: %s", booking_id, e)

        return self._committed_response(booking, sections, attempts)

    def _committed_response(self, booking: Booking, sections: List[str], attempts: Optional[int]) -> ToolResponse:
        phase = compute_booking_phase(booking)
        if booking.voucher_url:
            sections.append(f"\n**Voucher URL:** {booking.voucher_url}")
            sections.append("The customer can download their booking voucher from this link.")
        if phase == BookingPhase.COMMITTED_PENDING:
            sections.append("Supplier confirmation is still pending. Use get_booking_status to check later.")
        elif phase == BookingPhase.CANCELLED:
            sections.append(f"The supplier did not accept the booking (state {booking.state}).")

        structured = {
            "bookingId": booking.id,
            "bookingCode": booking.code,
            "status": _coarse_status(booking),
            "state": booking.state,
            "bookingPhase": phase.value,
            "totalPrice": format_money(booking.total_price, booking.currency),
            "items": items_to_structured(booking),
            "voucherUrl": booking.voucher_url,
            "nextActions": dump_actions(next_actions_for_booking(phase)),
        }
        if attempts is not None:
            structured["attempts"] = attempts
        return ToolResponse(text="\n".join(sections), structured=structured)

    def wait_for_confirmation(self, booking_id: str) -> ToolResponse:
        """Standalone bounded wait, for callers that committed without waiting."""
        try:
            result = self.poller.wait(booking_id)
        except Exception as e:
            return self._failure(e, booking_id, "Error waiting for confirmation")
        sections = [f"**Booking ID:** {result.booking.id}", f"**State:** {result.booking.state}"]
        return self._committed_response(result.booking, sections, result.attempts)

    def get_booking_status(self, booking_id: str) -> ToolResponse:
        try:
            booking = self.client.get_booking(booking_id)
            if booking is None:
                raise BookingNotFoundError(f"Booking not found: {booking_id}")
        except Exception as e:
            return self._failure(e, booking_id, "Error fetching booking status")

        structured = booking_to_structured(booking)
        structured.update({
            "status": _coarse_status(booking),
            "leadPassenger": booking.lead_passenger_name,
            "paymentState": booking.payment_state,
        })
        return ToolResponse(text=format_booking_summary(booking), structured=structured)
