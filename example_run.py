"""
Run this script to see a full booking flow against the mock supplier:
 - check availability and configure a slot (options -> pricing -> isValid)
 - try to attach an unconfigured slot (SLOT_NOT_CONFIGURED)
 - create a booking, attach the valid slot, answer questions
 - try to commit too early, then pay and commit, waiting for confirmation
"""

import json

from booking_schemas import (
    BookingQuestion,
    Choice,
    OptionAnswer,
    PricingAssignment,
    PricingCategory,
    QuestionAnswer,
    SlotOption,
)
from config import Settings, configure_logging
from mock_supplier import MockExperienceSupplier
from slot_configurator import SlotConfigurator
from txn_manager import TransactionManager


def seed_demo_supplier(requires_payment: bool = True) -> MockExperienceSupplier:
    supplier = MockExperienceSupplier(
        requires_payment=requires_payment,
        confirm_after_polls=2,
        booking_questions=[
            BookingQuestion(id="q-email", label="EMAIL", type="email", required=True),
            BookingQuestion(id="q-phone", label="PHONE_NUMBER", type="phone", required=True),
            BookingQuestion(id="q-source", label="How did you hear about us?", required=False),
        ],
    )
    for slot_id, date in (("slot-louvre-1102", "2026-11-02"), ("slot-louvre-1103", "2026-11-03")):
        supplier.add_slot(
            "exp-louvre",
            slot_id,
            date,
            product_name="Louvre Guided Tour",
            guide_price=49.0,
            options=[
                SlotOption(id="opt-time", label="Start time", data_type="TIME", choices=[
                    Choice(value="09:00", label="9:00 AM"),
                    Choice(value="14:00", label="2:00 PM"),
                ]),
                SlotOption(id="opt-lang", label="Language", choices=[
                    Choice(value="en", label="English"),
                    Choice(value="fr", label="French"),
                ]),
            ],
            pricing=[
                PricingCategory(id="adult", label="Adult", unit_price=49.0, min_participants=1, max_participants=8),
                PricingCategory(id="child", label="Child", unit_price=25.0, min_participants=0, max_participants=4),
            ],
            person_questions=[
                BookingQuestion(id="NAME_GIVEN", label="NAME_GIVEN", required=True),
            ],
        )
    return supplier


def show(title, response):
    print(f"\n=== {title} ===")
    print(response.text)
    print("isError:", response.is_error)
    print("nextActions:", json.dumps(response.next_actions))


def main():
    configure_logging()
    supplier = seed_demo_supplier()
    settings = Settings(confirmation_interval_seconds=0.1)
    slots = SlotConfigurator(supplier)
    tm = TransactionManager(supplier, settings)

    show("Availability", slots.lookup_slots("exp-louvre", "2026-11-01", "2026-11-07"))

    booking = tm.create_booking()
    booking_id = booking.structured["bookingId"]
    show("Create booking", booking)

    # attaching before configuration is rejected with a remediation list
    show("Attach unconfigured slot", tm.add_to_booking(booking_id, "slot-louvre-1102"))

    show("Configure slot", slots.configure_slot(
        "slot-louvre-1102",
        options=[OptionAnswer(id="opt-time", value="09:00"), OptionAnswer(id="opt-lang", value="en")],
        pricing=[PricingAssignment(id="adult", units=2)],
    ))
    show("Attach valid slot", tm.add_to_booking(booking_id, "slot-louvre-1102"))

    questions = tm.get_booking_questions(booking_id)
    show("Questions", questions)
    person_ids = [
        q["id"] for group in questions.structured["personQuestions"] for q in group["questions"]
    ]

    show("Commit too early", tm.commit_booking(booking_id))

    answers = [
        QuestionAnswer(question_id="q-email", value="ada@example.com"),
        QuestionAnswer(question_id="q-phone", value="+44 20 7946 0000"),
    ] + [QuestionAnswer(question_id=qid, value="Ada") for qid in person_ids]
    show("Answer questions", tm.answer_booking_questions(booking_id, "Ada Lovelace", answers))

    show("Payment info", tm.get_payment_info(booking_id))
    show("Commit before payment", tm.commit_booking(booking_id))

    # the consumer pays out-of-band
    supplier.mark_paid(booking_id)
    show("Commit", tm.commit_booking(booking_id, wait_for_confirmation=True))
    show("Status", tm.get_booking_status(booking_id))


if __name__ == "__main__":
    main()
