"""Classification of upstream booking failures into recoverable error codes."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from booking_schemas import NextAction, ToolError
from supplier_client import (
    PaymentIntentUnavailableError,
    PaymentRequiredError,
    QuestionsIncompleteError,
    SlotNotConfiguredError,
    SupplierError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    SLOT_NOT_CONFIGURED = "SLOT_NOT_CONFIGURED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    MISSING_REQUIRED_QUESTIONS = "MISSING_REQUIRED_QUESTIONS"
    INVALID_INPUT = "INVALID_INPUT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


ERROR_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.SLOT_NOT_CONFIGURED: (
        "The availability slot is not fully configured. Answer its options and set "
        "pricing units until isValid=true, then add it to the booking again."
    ),
    ErrorCode.PAYMENT_REQUIRED: (
        "Payment has not been completed for this booking. Complete the consumer "
        "payment, then retry commit_booking."
    ),
    ErrorCode.MISSING_REQUIRED_QUESTIONS: (
        "Required booking questions are still unanswered. Answer the missing "
        "questions, check canCommit=true, then retry commit_booking."
    ),
    ErrorCode.INVALID_INPUT: (
        "leadPassengerName is required. Ask the customer for the lead traveller's "
        "full name, then call answer_booking_questions again."
    ),
}

ERROR_RECOVERY: Dict[ErrorCode, List[NextAction]] = {
    ErrorCode.SLOT_NOT_CONFIGURED: [
        NextAction(tool="get_slot_options", reason="Check and answer the slot's configuration options"),
        NextAction(tool="get_slot_pricing", reason="Get pricing categories once options are complete"),
        NextAction(tool="set_slot_pricing", reason="Set participant units (e.g. 2 Adults)"),
        NextAction(tool="add_to_booking", reason="Retry once the slot reports isValid=true"),
    ],
    ErrorCode.PAYMENT_REQUIRED: [
        NextAction(tool="get_payment_info", reason="Get payment details so the consumer can pay"),
        NextAction(tool="commit_booking", reason="Retry the commit after payment completes"),
    ],
    ErrorCode.MISSING_REQUIRED_QUESTIONS: [
        NextAction(tool="get_booking_questions", reason="See the unanswered required questions"),
        NextAction(tool="answer_booking_questions", reason="Answer the missing questions with leadPassengerName"),
    ],
    ErrorCode.INVALID_INPUT: [
        NextAction(tool="answer_booking_questions", reason="Retry with the lead passenger's full name"),
    ],
    ErrorCode.UPSTREAM_ERROR: [],
}

# message signatures for failures that arrive untyped (raw GraphQL / transport errors)
_SIGNATURES = [
    (ErrorCode.SLOT_NOT_CONFIGURED, ("not valid", "isvalid", "not configured", "availability is incomplete", "options incomplete")),
    (ErrorCode.MISSING_REQUIRED_QUESTIONS, ("question", "cancommit", "can not commit", "cannot commit")),
    (ErrorCode.PAYMENT_REQUIRED, ("payment required", "payment not", "not paid", "unpaid", "awaiting payment")),
]

_PAYMENT_UNAVAILABLE_SIGNATURES = ("payment", "not found", "not required")

_TYPED = (
    (SlotNotConfiguredError, ErrorCode.SLOT_NOT_CONFIGURED),
    (PaymentRequiredError, ErrorCode.PAYMENT_REQUIRED),
    (QuestionsIncompleteError, ErrorCode.MISSING_REQUIRED_QUESTIONS),
)


@dataclass
class ClassifiedError:
    code: ErrorCode
    message: str
    next_actions: List[NextAction]
    raw_message: str
    context: Dict[str, str] = field(default_factory=dict)

    def to_tool_error(self, missing: Optional[List[str]] = None) -> ToolError:
        return ToolError(
            code=self.code.value,
            message=self.message,
            next_actions=list(self.next_actions),
            missing=missing,
        )


def _raw_message(error: BaseException) -> str:
    if isinstance(error, SupplierError):
        return error.message
    return str(error) or error.__class__.__name__


def _match_code(error: BaseException) -> ErrorCode:
    for cls, code in _TYPED:
        if isinstance(error, cls):
            return code
    text = _raw_message(error).lower()
    for code, needles in _SIGNATURES:
        if any(n in text for n in needles):
            return code
    return ErrorCode.UPSTREAM_ERROR


def classify_error(error: BaseException, context: Optional[Dict[str, str]] = None) -> ClassifiedError:
    """Turn an upstream failure into a typed, caller-actionable error.

    Typed supplier errors are matched by class; anything else falls back to
    message signatures and finally to UPSTREAM_ERROR with the raw text kept.
    """
    context = {k: v for k, v in (context or {}).items() if v}
    raw = _raw_message(error)
    code = _match_code(error)
    message = ERROR_MESSAGES.get(code, raw)

    if code == ErrorCode.UPSTREAM_ERROR:
        logger.error("Unclassified upstream error %s: %s", context, raw)
    else:
        logger.warning("Classified upstream error as %s %s: %s", code.value, context, raw)

    return ClassifiedError(
        code=code,
        message=message,
        next_actions=list(ERROR_RECOVERY[code]),
        raw_message=raw,
        context=context,
    )


def is_payment_unavailable(error: BaseException) -> bool:
    """True when a payment-intent lookup failed because none is needed (on-account)."""
    if isinstance(error, PaymentIntentUnavailableError):
        return True
    # other typed supplier errors carry their own meaning
    if isinstance(error, SupplierError) and type(error) is not SupplierError:
        return False
    text = _raw_message(error).lower()
    return any(n in text for n in _PAYMENT_UNAVAILABLE_SIGNATURES)
