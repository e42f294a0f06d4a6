"""Supplier client interface (the experience supplier's booking API).

The concrete client talks to the supplier's GraphQL endpoint and owns its own
retries and timeouts. Everything above it depends only on this interface and
on the error hierarchy below.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from booking_schemas import (
    AvailabilityDetail,
    Booking,
    OptionAnswer,
    PaymentIntent,
    PricingAssignment,
    QuestionAnswer,
    Slot,
)


class SupplierError(Exception):
    """Base class for failures reported by the supplier."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SlotNotConfiguredError(SupplierError):
    """The availability is not valid for booking (options or pricing incomplete)."""


class PaymentRequiredError(SupplierError):
    """Commit rejected because consumer payment has not been completed."""


class QuestionsIncompleteError(SupplierError):
    """Commit rejected because required booking questions are unanswered."""


class PaymentIntentUnavailableError(SupplierError):
    """No payment intent exists for the booking (on-account booking)."""


class BookingNotFoundError(SupplierError):
    """The booking id is unknown to the supplier."""


class SupplierClient(ABC):
    """Operations the orchestration layer needs from the supplier."""

    # availability

    @abstractmethod
    def get_availability_list(self, experience_id: str, date_from: str, date_to: str) -> List[Slot]:
        """Return slots for an experience between two ISO dates (inclusive)."""
        ...

    @abstractmethod
    def get_availability(self, slot_id: str) -> AvailabilityDetail:
        """Return a slot with its options and, when available, pricing."""
        ...

    @abstractmethod
    def set_availability_options(self, slot_id: str, answers: Sequence[OptionAnswer]) -> AvailabilityDetail:
        ...

    @abstractmethod
    def get_availability_pricing(self, slot_id: str) -> AvailabilityDetail:
        ...

    @abstractmethod
    def set_availability_pricing(self, slot_id: str, assignments: Sequence[PricingAssignment]) -> AvailabilityDetail:
        ...

    # booking

    @abstractmethod
    def create_booking(self, auto_fill_questions: bool = True) -> Booking:
        ...

    @abstractmethod
    def add_availability_to_booking(self, booking_id: str, slot_id: str) -> Booking:
        """Attach a valid slot. Raises SlotNotConfiguredError otherwise."""
        ...

    @abstractmethod
    def get_booking_questions(self, booking_id: str) -> Booking:
        ...

    @abstractmethod
    def answer_booking_questions(
        self, booking_id: str, lead_passenger_name: str, answers: Sequence[QuestionAnswer]
    ) -> Booking:
        ...

    @abstractmethod
    def get_payment_intent(self, booking_id: str) -> PaymentIntent:
        """Raises PaymentIntentUnavailableError for on-account bookings."""
        ...

    @abstractmethod
    def commit_booking(self, booking_id: str) -> Booking:
        ...

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return the live booking record, or None if it does not exist."""
        ...
