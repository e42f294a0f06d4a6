"""Pytest configuration and shared fixtures."""

import pytest

from booking_schemas import (
    BookingQuestion,
    Choice,
    OptionAnswer,
    PricingAssignment,
    PricingCategory,
    SlotOption,
)
from config import Settings
from mock_supplier import MockExperienceSupplier

EXPERIENCE_ID = "exp-kayak"
SLOT_ID = "slot-kayak-0601"
TOKEN_SECRET = "test-token-secret"


def seed(supplier: MockExperienceSupplier) -> MockExperienceSupplier:
    supplier.add_slot(
        EXPERIENCE_ID,
        SLOT_ID,
        "2026-06-01",
        start_time="10:00",
        product_name="Sea Kayak Tour",
        guide_price=60.0,
        options=[
            SlotOption(id="opt-time", label="Time", choices=[
                Choice(value="10:00", label="10 AM"),
                Choice(value="15:00", label="3 PM"),
            ]),
            SlotOption(id="opt-lang", label="Language"),
            SlotOption(id="opt-notes", label="Notes", required=False),
        ],
        pricing=[
            PricingCategory(id="adult", label="Adult", unit_price=60.0, min_participants=1, max_participants=6),
            PricingCategory(id="child", label="Child", unit_price=30.0, min_participants=0, max_participants=2),
        ],
        person_questions=[BookingQuestion(id="NAME_GIVEN", label="NAME_GIVEN", required=True)],
    )
    supplier.add_slot(EXPERIENCE_ID, "slot-kayak-0602", "2026-06-02", guide_price=60.0, sold_out=True)
    return supplier


def email_question(**kwargs) -> BookingQuestion:
    return BookingQuestion(id="q-email", label="EMAIL", type="email", required=True, **kwargs)


@pytest.fixture
def supplier() -> MockExperienceSupplier:
    return seed(MockExperienceSupplier(confirm_after_polls=2, booking_questions=[email_question()]))


@pytest.fixture
def paying_supplier() -> MockExperienceSupplier:
    return seed(MockExperienceSupplier(requires_payment=True, confirm_after_polls=0, booking_questions=[email_question()]))


@pytest.fixture
def settings() -> Settings:
    return Settings(token_secret=TOKEN_SECRET, confirmation_interval_seconds=2.0)


@pytest.fixture
def sleeps():
    """Records requested sleeps instead of waiting."""
    calls = []
    return calls


OPTION_ANSWERS = [OptionAnswer(id="opt-time", value="10:00"), OptionAnswer(id="opt-lang", value="en")]
TWO_ADULTS = [PricingAssignment(id="adult", units=2)]


def make_valid(supplier: MockExperienceSupplier, slot_id: str = SLOT_ID) -> None:
    supplier.set_availability_options(slot_id, OPTION_ANSWERS)
    supplier.set_availability_pricing(slot_id, TWO_ADULTS)
