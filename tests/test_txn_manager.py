import pytest

from booking_schemas import QuestionAnswer
from booking_state import BookingPhase
from config import Settings
from conftest import SLOT_ID, email_question, make_valid, seed
from mock_supplier import MockExperienceSupplier
from payments.checkout import validate_checkout_token
from txn_manager import ConfirmationPoller, TransactionManager


def _tools(response):
    return [a["tool"] for a in response.next_actions]


def _manager(supplier, settings, sleeps):
    return TransactionManager(supplier, settings, sleep=sleeps.append)


def _basket(manager, supplier):
    """Create a booking holding the configured slot; returns its id."""
    make_valid(supplier)
    booking_id = manager.create_booking().structured["bookingId"]
    assert not manager.add_to_booking(booking_id, SLOT_ID).is_error
    return booking_id


def _person_answers(supplier, booking_id, value="Ada"):
    booking = supplier.get_booking_questions(booking_id)
    return [
        QuestionAnswer(question_id=q.id, value=value)
        for item in booking.items for person in item.persons for q in person.questions
    ]


def _answer_all(manager, supplier, booking_id):
    answers = _person_answers(supplier, booking_id)
    answers.append(QuestionAnswer(question_id="q-email", value="ada@example.com"))
    return manager.answer_booking_questions(booking_id, "Ada Lovelace", answers)


class TestAttach:

    def test_unconfigured_slot_is_rejected_and_basket_stays_empty(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = manager.create_booking().structured["bookingId"]

        res = manager.add_to_booking(booking_id, SLOT_ID)

        assert res.is_error
        assert res.structured["error"]["code"] == "SLOT_NOT_CONFIGURED"
        assert _tools(res) == ["get_slot_options", "get_slot_pricing", "set_slot_pricing", "add_to_booking"]
        assert res.text.startswith("## Slot Not Ready")
        assert supplier.get_booking(booking_id).items == []

    def test_valid_slot_needs_questions(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        make_valid(supplier)
        booking_id = manager.create_booking().structured["bookingId"]

        res = manager.add_to_booking(booking_id, SLOT_ID)

        assert not res.is_error
        assert res.structured["canCommit"] is False
        assert res.structured["bookingPhase"] == BookingPhase.NEEDS_QUESTIONS.value
        assert res.structured["totalPrice"] == "GBP 120.00"
        assert len(res.structured["personQuestions"]) == 2
        assert _tools(res) == ["get_booking_questions", "answer_booking_questions"]

    def test_new_booking_is_draft(self, supplier, settings, sleeps):
        res = _manager(supplier, settings, sleeps).create_booking()
        assert res.structured["bookingPhase"] == BookingPhase.DRAFT.value
        assert _tools(res) == ["add_to_booking"]


class TestQuestions:

    def test_missing_lists_every_scope(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        res = manager.get_booking_questions(booking_id)
        assert res.structured["missing"] == ["EMAIL", "Adult: NAME_GIVEN", "Adult: NAME_GIVEN"]
        assert "## Booking Questions" in res.text

    def test_partial_answers_keep_asking(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        res = manager.answer_booking_questions(booking_id, "Ada Lovelace", _person_answers(supplier, booking_id))
        assert res.structured["canCommit"] is False
        assert res.structured["missing"] == ["EMAIL"]
        assert _tools(res) == ["answer_booking_questions"]

    def test_all_answered_is_ready(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        res = _answer_all(manager, supplier, booking_id)
        assert res.structured["canCommit"] is True
        assert res.structured["bookingPhase"] == BookingPhase.READY_TO_COMMIT.value
        assert _tools(res) == ["get_payment_info", "commit_booking"]

    def test_can_commit_tracks_missing_list(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        steps = [
            manager.get_booking_questions(booking_id),
            manager.answer_booking_questions(booking_id, "Ada Lovelace", _person_answers(supplier, booking_id)),
            _answer_all(manager, supplier, booking_id),
        ]
        for res in steps:
            assert res.structured["canCommit"] == (res.structured["missing"] == [])

    @pytest.mark.parametrize("name", ["", "  "])
    def test_blank_lead_passenger_name_is_an_error_response(self, supplier, settings, sleeps, name):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)

        res = manager.answer_booking_questions(booking_id, name, _person_answers(supplier, booking_id))

        assert res.is_error
        assert res.structured["error"]["code"] == "INVALID_INPUT"
        assert "leadPassengerName" in res.structured["error"]["message"]
        assert _tools(res) == ["answer_booking_questions"]
        assert res.structured["bookingId"] == booking_id
        assert "answer_booking_questions" not in supplier.calls


class TestCommit:

    def test_unanswered_email_blocks_commit(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        manager.answer_booking_questions(booking_id, "Ada Lovelace", _person_answers(supplier, booking_id))

        res = manager.commit_booking(booking_id)

        assert res.is_error
        assert res.structured["error"]["code"] == "MISSING_REQUIRED_QUESTIONS"
        assert res.structured["error"]["missing"] == ["EMAIL"]
        assert _tools(res) == ["get_booking_questions", "answer_booking_questions"]
        assert supplier.get_booking(booking_id).state == "OPEN"

    def test_pending_then_confirmed_with_voucher(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        _answer_all(manager, supplier, booking_id)

        res = manager.commit_booking(booking_id, wait_for_confirmation=True)

        assert not res.is_error
        assert res.structured["state"] == "CONFIRMED"
        assert res.structured["status"] == "confirmed"
        assert res.structured["voucherUrl"] == "https://vouchers.example.com/HB-0001.pdf"
        assert res.structured["attempts"] == 2
        assert res.structured["nextActions"] == []
        assert sleeps == [2.0]

    def test_commit_without_waiting_reports_pending(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        _answer_all(manager, supplier, booking_id)

        res = manager.commit_booking(booking_id)

        assert res.structured["bookingPhase"] == BookingPhase.COMMITTED_PENDING.value
        assert _tools(res) == ["get_booking_status"]
        assert "attempts" not in res.structured
        assert sleeps == []

    def test_wait_times_out_after_max_attempts(self, settings, sleeps):
        slow = seed(MockExperienceSupplier(confirm_after_polls=100, booking_questions=[email_question()]))
        manager = _manager(slow, settings, sleeps)
        booking_id = _basket(manager, slow)
        _answer_all(manager, slow, booking_id)

        res = manager.commit_booking(booking_id, wait_for_confirmation=True)

        assert not res.is_error
        assert res.structured["attempts"] == 15
        assert res.structured["bookingPhase"] == BookingPhase.COMMITTED_PENDING.value
        assert len(sleeps) == 14

    def test_supplier_rejection_ends_cancelled(self, settings, sleeps):
        rejecting = seed(MockExperienceSupplier(reject_pending=True, booking_questions=[email_question()]))
        manager = _manager(rejecting, settings, sleeps)
        booking_id = _basket(manager, rejecting)
        _answer_all(manager, rejecting, booking_id)

        res = manager.commit_booking(booking_id, wait_for_confirmation=True)

        assert res.structured["status"] == "cancelled"
        assert res.structured["bookingPhase"] == BookingPhase.CANCELLED.value
        assert res.structured["voucherUrl"] is None

    def test_standalone_wait(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        _answer_all(manager, supplier, booking_id)
        manager.commit_booking(booking_id)

        res = manager.wait_for_confirmation(booking_id)
        assert res.structured["state"] == "CONFIRMED"


class TestPayment:

    def test_on_account_booking(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        res = manager.get_payment_info(booking_id)
        assert not res.is_error
        assert res.structured["status"] == "no_payment_required"
        assert _tools(res) == ["commit_booking"]

    def test_unpaid_commit_is_payment_required(self, paying_supplier, settings, sleeps):
        manager = _manager(paying_supplier, settings, sleeps)
        booking_id = _basket(manager, paying_supplier)
        _answer_all(manager, paying_supplier, booking_id)

        status = manager.get_booking_status(booking_id)
        assert status.structured["bookingPhase"] == BookingPhase.NEEDS_PAYMENT.value
        assert status.structured["status"] == "payment_required"

        res = manager.commit_booking(booking_id)
        assert res.is_error
        assert res.structured["error"]["code"] == "PAYMENT_REQUIRED"
        assert _tools(res) == ["get_payment_info", "commit_booking"]
        assert res.text.startswith("## Payment Not Completed")

    def test_paid_commit_confirms_synchronously(self, paying_supplier, settings, sleeps):
        manager = _manager(paying_supplier, settings, sleeps)
        booking_id = _basket(manager, paying_supplier)
        _answer_all(manager, paying_supplier, booking_id)
        paying_supplier.mark_paid(booking_id)

        res = manager.commit_booking(booking_id, wait_for_confirmation=True)
        assert res.structured["state"] == "CONFIRMED"
        assert "attempts" not in res.structured

    def test_checkout_without_token_secret_falls_back_to_raw_intent(self, paying_supplier, sleeps):
        no_secret = Settings(public_url="https://book.example.com", api_key="partner-key")
        manager = _manager(paying_supplier, no_secret, sleeps)
        booking_id = _basket(manager, paying_supplier)

        res = manager.get_payment_info(booking_id)

        assert not res.is_error
        assert res.structured["status"] == "payment_required"
        assert res.structured["checkoutUrl"] is None
        assert res.structured["payment"]["clientSecret"] == f"pi_{booking_id}_secret_mock"

    def test_payment_details_without_checkout(self, paying_supplier, settings, sleeps):
        manager = _manager(paying_supplier, settings, sleeps)
        booking_id = _basket(manager, paying_supplier)
        res = manager.get_payment_info(booking_id)
        payment = res.structured["payment"]
        assert res.structured["status"] == "payment_required"
        assert res.structured["checkoutUrl"] is None
        assert payment["amountMinor"] == 12000
        assert payment["amount"] == 120.0
        assert payment["clientSecret"] == f"pi_{booking_id}_secret_mock"

    def test_checkout_url_carries_a_valid_token(self, paying_supplier, settings, sleeps):
        checkout = settings.model_copy(update={"public_url": "https://book.example.com", "api_key": "partner-key"})
        manager = _manager(paying_supplier, checkout, sleeps)
        booking_id = _basket(manager, paying_supplier)

        res = manager.get_payment_info(booking_id)
        url = res.structured["checkoutUrl"]
        assert url.startswith("https://book.example.com/checkout/")
        assert "expires in 15 minutes" in res.text

        payload = validate_checkout_token(url.rsplit("/", 1)[-1], checkout.token_secret)
        assert payload.booking_id == booking_id
        assert payload.api_key == "partner-key"
        assert payload.amount == 12000
        assert payload.currency == "GBP"


class TestStatus:

    def test_unknown_booking(self, supplier, settings, sleeps):
        res = _manager(supplier, settings, sleeps).get_booking_status("bk-404")
        assert res.is_error
        assert res.structured["error"]["code"] == "UPSTREAM_ERROR"
        assert "bk-404" in res.structured["error"]["message"]

    def test_reports_lead_passenger(self, supplier, settings, sleeps):
        manager = _manager(supplier, settings, sleeps)
        booking_id = _basket(manager, supplier)
        _answer_all(manager, supplier, booking_id)
        res = manager.get_booking_status(booking_id)
        assert res.structured["leadPassenger"] == "Ada Lovelace"
        assert res.structured["status"] == "open"
        assert _tools(res) == ["commit_booking"]


def test_poller_needs_at_least_one_attempt():
    with pytest.raises(ValueError):
        ConfirmationPoller(MockExperienceSupplier(), max_attempts=0)


def test_default_settings_are_used():
    manager = TransactionManager(MockExperienceSupplier())
    assert manager.poller.max_attempts == 15
    assert manager.poller.interval_seconds == 2.0
    assert isinstance(manager.settings, Settings)
