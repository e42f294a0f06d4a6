import itertools
from typing import Dict, Iterable, List, Optional, Sequence

from booking_schemas import (
    AvailabilityDetail,
    Booking,
    BookingItem,
    BookingPerson,
    BookingQuestion,
    OptionAnswer,
    PaymentIntent,
    PricingAssignment,
    PricingCategory,
    QuestionAnswer,
    Slot,
    SlotOption,
)
from booking_state import AWAITING_PAYMENT, collect_missing_questions, iter_questions
from supplier_client import (
    BookingNotFoundError,
    PaymentIntentUnavailableError,
    PaymentRequiredError,
    QuestionsIncompleteError,
    SlotNotConfiguredError,
    SupplierClient,
    SupplierError,
)


class _SlotRecord:
    def __init__(self, experience_id: str, slot: Slot, detail: AvailabilityDetail, product_name: str,
                 item_questions: List[BookingQuestion], person_questions: List[BookingQuestion]):
        self.experience_id = experience_id
        self.slot = slot
        self.detail = detail
        self.product_name = product_name
        self.item_questions = item_questions
        self.person_questions = person_questions


class MockExperienceSupplier(SupplierClient):
    """
    In-memory supplier for demos and tests. Deterministic: behaves like the
    real booking API for the flows the orchestration layer relies on.

    requires_payment: bookings need consumer payment (mark_paid) before commit.
    confirm_after_polls: status reads a PENDING booking takes to become CONFIRMED
    (0 confirms synchronously on commit).
    reject_pending: PENDING bookings end CANCELLED instead of CONFIRMED.
    """

    def __init__(
        self,
        requires_payment: bool = False,
        confirm_after_polls: int = 1,
        reject_pending: bool = False,
        booking_questions: Iterable[BookingQuestion] = (),
        currency: str = "GBP",
    ):
        self.requires_payment = requires_payment
        self.confirm_after_polls = confirm_after_polls
        self.reject_pending = reject_pending
        self.booking_questions = list(booking_questions)
        self.currency = currency
        self._slots: Dict[str, _SlotRecord] = {}
        self._bookings: Dict[str, Booking] = {}
        self._paid: set = set()
        self._polls_left: Dict[str, int] = {}
        self._ids = itertools.count(1)
        self.calls: List[str] = []

    # --- seeding helpers ---

    def add_slot(
        self,
        experience_id: str,
        slot_id: str,
        date: str,
        start_time: Optional[str] = None,
        product_name: str = "Experience",
        guide_price: Optional[float] = None,
        sold_out: bool = False,
        options: Sequence[SlotOption] = (),
        pricing: Sequence[PricingCategory] = (),
        item_questions: Sequence[BookingQuestion] = (),
        person_questions: Sequence[BookingQuestion] = (),
    ) -> None:
        slot = Slot(id=slot_id, date=date, start_time=start_time, sold_out=sold_out,
                    guide_price=guide_price, currency=self.currency)
        detail = AvailabilityDetail(
            id=slot_id,
            date=date,
            start_time=start_time,
            options=[o.model_copy(deep=True) for o in options],
            pricing_categories=[p.model_copy(deep=True) for p in pricing],
            currency=self.currency,
        )
        self._slots[slot_id] = _SlotRecord(
            experience_id, slot, detail, product_name, list(item_questions), list(person_questions)
        )

    def mark_paid(self, booking_id: str) -> None:
        """Simulate the consumer completing payment out-of-band."""
        booking = self._booking(booking_id)
        self._paid.add(booking_id)
        booking.payment_state = "PAID"

    # --- internals ---

    def _record(self, slot_id: str) -> _SlotRecord:
        try:
            return self._slots[slot_id]
        except KeyError:
            raise SupplierError(f"Availability not found: {slot_id}")

    def _booking(self, booking_id: str) -> Booking:
        try:
            return self._bookings[booking_id]
        except KeyError:
            raise BookingNotFoundError(f"Booking not found: {booking_id}")

    def _refresh_slot(self, detail: AvailabilityDetail) -> None:
        cats = detail.pricing_categories or []
        detail.total_price = round(sum(c.total_price or 0 for c in cats), 2) if cats else None
        within_bounds = all(
            (c.min_participants is None or c.units >= c.min_participants)
            and (c.max_participants is None or c.units <= c.max_participants)
            for c in cats
        )
        detail.is_valid = (
            detail.options_complete and bool(cats) and sum(c.units for c in cats) > 0 and within_bounds
        )

    def _view(self, slot_id: str, with_pricing: bool = True) -> AvailabilityDetail:
        detail = self._record(slot_id).detail
        self._refresh_slot(detail)
        view = detail.model_copy(deep=True)
        if not (with_pricing and detail.options_complete):
            view.pricing_categories = None
            view.total_price = None
        return view

    def _refresh_booking(self, booking: Booking) -> None:
        booking.can_commit = not collect_missing_questions(booking)
        totals = [i.total_price for i in booking.items if i.total_price is not None]
        booking.total_price = round(sum(totals), 2) if totals else None

    @staticmethod
    def _autofill(questions: Iterable[BookingQuestion]) -> None:
        for q in questions:
            if not q.answer_value and q.auto_complete_value:
                q.answer_value = q.auto_complete_value

    # --- availability ---

    def get_availability_list(self, experience_id: str, date_from: str, date_to: str) -> List[Slot]:
        self.calls.append("get_availability_list")
        slots = [
            r.slot.model_copy() for r in self._slots.values()
            if r.experience_id == experience_id and date_from <= r.slot.date <= date_to
        ]
        return sorted(slots, key=lambda s: (s.date, s.start_time or ""))

    def get_availability(self, slot_id: str) -> AvailabilityDetail:
        self.calls.append("get_availability")
        return self._view(slot_id)

    def set_availability_options(self, slot_id: str, answers: Sequence[OptionAnswer]) -> AvailabilityDetail:
        self.calls.append("set_availability_options")
        detail = self._record(slot_id).detail
        by_id = {o.id: o for o in detail.options or []}
        for answer in answers:
            opt = by_id.get(answer.id)
            if opt is None:
                raise SupplierError(f"Unknown option {answer.id} for availability {slot_id}")
            labels = {c.value: c.label for c in opt.choices}
            if labels and answer.value not in labels:
                raise SupplierError(f"Invalid value {answer.value!r} for option {opt.label}")
            opt.answer_value = answer.value
            opt.answer_text = labels.get(answer.value, answer.value)
        return self._view(slot_id)

    def get_availability_pricing(self, slot_id: str) -> AvailabilityDetail:
        self.calls.append("get_availability_pricing")
        return self._view(slot_id)

    def set_availability_pricing(self, slot_id: str, assignments: Sequence[PricingAssignment]) -> AvailabilityDetail:
        self.calls.append("set_availability_pricing")
        detail = self._record(slot_id).detail
        if not detail.options_complete:
            raise SlotNotConfiguredError(f"Availability {slot_id} options incomplete; pricing unavailable")
        by_id = {c.id: c for c in detail.pricing_categories or []}
        for assignment in assignments:
            cat = by_id.get(assignment.id)
            if cat is None:
                raise SupplierError(f"Unknown pricing category {assignment.id}")
            cat.units = assignment.units
        return self._view(slot_id)

    # --- booking ---

    def create_booking(self, auto_fill_questions: bool = True) -> Booking:
        self.calls.append("create_booking")
        n = next(self._ids)
        booking = Booking(
            id=f"bk-{n}",
            code=f"HB-{n:04d}",
            currency=self.currency,
            questions=[q.model_copy(deep=True) for q in self.booking_questions],
        )
        if auto_fill_questions:
            self._autofill(booking.questions)
        self._refresh_booking(booking)
        self._bookings[booking.id] = booking
        return booking.model_copy(deep=True)

    def add_availability_to_booking(self, booking_id: str, slot_id: str) -> Booking:
        self.calls.append("add_availability_to_booking")
        booking = self._booking(booking_id)
        record = self._record(slot_id)
        self._refresh_slot(record.detail)
        if not record.detail.is_valid:
            raise SlotNotConfiguredError(f"Availability {slot_id} is not valid for booking")
        if booking.state != "OPEN":
            raise SupplierError(f"Booking {booking_id} is {booking.state} and cannot be changed")

        item_no = len(booking.items) + 1
        persons = []
        for cat in record.detail.pricing_categories or []:
            for i in range(cat.units):
                person_id = f"{booking_id}-i{item_no}-{cat.id}-{i + 1}"
                persons.append(BookingPerson(
                    id=person_id,
                    pricing_category_label=cat.label,
                    questions=[
                        q.model_copy(update={"id": f"{person_id}:{q.id}"}, deep=True)
                        for q in record.person_questions
                    ],
                ))
        item = BookingItem(
            id=f"{booking_id}-i{item_no}",
            product_name=record.product_name,
            date=record.detail.date,
            start_time=record.detail.start_time,
            total_price=record.detail.total_price,
            questions=[
                q.model_copy(update={"id": f"{booking_id}-i{item_no}:{q.id}"}, deep=True)
                for q in record.item_questions
            ],
            persons=persons,
        )
        booking.items.append(item)
        self._autofill(q for _, _, q in iter_questions(booking))
        if self.requires_payment and booking_id not in self._paid:
            booking.payment_state = AWAITING_PAYMENT
        self._refresh_booking(booking)
        return booking.model_copy(deep=True)

    def get_booking_questions(self, booking_id: str) -> Booking:
        self.calls.append("get_booking_questions")
        return self._booking(booking_id).model_copy(deep=True)

    def answer_booking_questions(
        self, booking_id: str, lead_passenger_name: str, answers: Sequence[QuestionAnswer]
    ) -> Booking:
        self.calls.append("answer_booking_questions")
        booking = self._booking(booking_id)
        by_id = {q.id: q for _, _, q in iter_questions(booking)}
        for answer in answers:
            q = by_id.get(answer.question_id)
            if q is None:
                raise SupplierError(f"Unknown question {answer.question_id} on booking {booking_id}")
            q.answer_value = answer.value
        booking.lead_passenger_name = lead_passenger_name
        self._refresh_booking(booking)
        return booking.model_copy(deep=True)

    def get_payment_intent(self, booking_id: str) -> PaymentIntent:
        self.calls.append("get_payment_intent")
        booking = self._booking(booking_id)
        if not self.requires_payment:
            raise PaymentIntentUnavailableError(f"Payment intent not found: booking {booking_id} is on account")
        return PaymentIntent(
            id=f"pi_{booking_id}",
            amount=int(round((booking.total_price or 0) * 100)),
            client_secret=f"pi_{booking_id}_secret_mock",
            publishable_key="pk_test_mock",
            currency=booking.currency,
        )

    def commit_booking(self, booking_id: str) -> Booking:
        self.calls.append("commit_booking")
        booking = self._booking(booking_id)
        if booking.state != "OPEN":
            raise SupplierError(f"Booking {booking_id} is already {booking.state}")
        if not booking.items:
            raise SupplierError(f"Booking {booking_id} has no items")
        if not booking.can_commit:
            raise QuestionsIncompleteError("Cannot commit booking: required questions are unanswered")
        if self.requires_payment and booking_id not in self._paid:
            raise PaymentRequiredError("Payment required: consumer payment has not been completed")

        booking.state = "PENDING"
        self._polls_left[booking_id] = self.confirm_after_polls
        if self.confirm_after_polls <= 0:
            self._settle(booking)
        return booking.model_copy(deep=True)

    def _settle(self, booking: Booking) -> None:
        if self.reject_pending:
            booking.state = "CANCELLED"
            return
        booking.state = "CONFIRMED"
        booking.voucher_url = f"https://vouchers.example.com/{booking.code}.pdf"

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        self.calls.append("get_booking")
        booking = self._bookings.get(booking_id)
        if booking is None:
            return None
        if booking.state == "PENDING":
            self._polls_left[booking_id] -= 1
            if self._polls_left[booking_id] <= 0:
                self._settle(booking)
        return booking.model_copy(deep=True)
