import time
from typing import Callable, List, Optional, Sequence, Type, TypeVar

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel

from booking_schemas import OptionAnswer, PricingAssignment, QuestionAnswer
from config import Settings
from slot_configurator import SlotConfigurator
from supplier_client import SupplierClient
from txn_manager import TransactionManager

M = TypeVar("M", bound=BaseModel)


def _coerce(model: Type[M], items: Optional[Sequence]) -> List[M]:
    # tool args may arrive as dicts or as already-validated models
    return [i if isinstance(i, model) else model.model_validate(i) for i in items or []]


def build_booking_tools(
    client: SupplierClient,
    settings: Optional[Settings] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[BaseTool]:
    """
    One tool per booking operation, bound to a supplier client.
    Every tool returns {"content", "structuredContent", "isError"}; structuredContent
    always carries "nextActions".
    """
    configurator = SlotConfigurator(client)
    manager = TransactionManager(client, settings, sleep=sleep)

    @tool
    def check_availability(experience_id: str, date_from: str, date_to: str) -> dict:
        """Check which dates an experience is available within a date range (dates as YYYY-MM-DD).
        Returns slots with guide prices. After picking a slot, use get_slot_options to configure it before booking."""
        return configurator.lookup_slots(experience_id, date_from, date_to).to_payload()

    @tool
    def get_slot_options(slot_id: str) -> dict:
        """Get the configuration options for an availability slot (time, variant, language, etc.).
        Shows what needs answering before the slot can be added to a booking.
        If options are already complete, proceed to get_slot_pricing."""
        return configurator.get_slot_options(slot_id).to_payload()

    @tool
    def answer_slot_options(slot_id: str, options: List[OptionAnswer]) -> dict:
        """Answer configuration options for an availability slot. Re-answering an option overwrites it.
        Call repeatedly until optionsComplete is true, then use get_slot_pricing."""
        return configurator.answer_slot_options(slot_id, _coerce(OptionAnswer, options)).to_payload()

    @tool
    def get_slot_pricing(slot_id: str) -> dict:
        """Get pricing categories (Adult, Child, ...) with unit prices and min/max units.
        PREREQUISITE: optionsComplete must be true; otherwise categories may be missing.
        Use set_slot_pricing to set units."""
        return configurator.get_slot_pricing(slot_id).to_payload()

    @tool
    def set_slot_pricing(slot_id: str, pricing_categories: List[PricingAssignment]) -> dict:
        """Set the number of participants for each pricing category (e.g. 2 Adults, 1 Child).
        If isValid is true afterwards the slot is ready for add_to_booking; otherwise check
        pricingViolations against each category's min/max."""
        return configurator.set_slot_pricing(slot_id, _coerce(PricingAssignment, pricing_categories)).to_payload()

    @tool
    def configure_slot(
        slot_id: str,
        options: Optional[List[OptionAnswer]] = None,
        pricing_categories: Optional[List[PricingAssignment]] = None,
    ) -> dict:
        """Answer slot options and set pricing units in one call. Options are applied first; pricing
        is only set if the options came out complete. If slotPhase is OPTIONS_INCOMPLETE, answer the
        remaining options and call again."""
        return configurator.configure_slot(
            slot_id, _coerce(OptionAnswer, options), _coerce(PricingAssignment, pricing_categories)
        ).to_payload()

    @tool
    def create_booking() -> dict:
        """Create a new, empty booking basket (answerable questions are auto-filled).
        First booking step, after a slot is valid. Next: add_to_booking."""
        return manager.create_booking().to_payload()

    @tool
    def add_to_booking(booking_id: str, slot_id: str) -> dict:
        """Add a fully configured availability slot to a booking.
        PREREQUISITE: the slot MUST have isValid=true. Required order: check_availability ->
        get_slot_options -> answer_slot_options -> get_slot_pricing -> set_slot_pricing (isValid=true)
        -> create_booking -> add_to_booking."""
        return manager.add_to_booking(booking_id, slot_id).to_payload()

    @tool
    def get_booking_questions(booking_id: str) -> dict:
        """Get the unanswered booking questions (guest details, contact info, ...) grouped by
        booking, experience and person, with allowed choices."""
        return manager.get_booking_questions(booking_id).to_payload()

    @tool
    def answer_booking_questions(booking_id: str, lead_passenger_name: str, answers: List[QuestionAnswer]) -> dict:
        """Answer booking questions. You MUST provide lead_passenger_name (full name) AND answer ALL
        required questions from get_booking_questions. Only call commit_booking once canCommit is true."""
        return manager.answer_booking_questions(
            booking_id, lead_passenger_name, _coerce(QuestionAnswer, answers)
        ).to_payload()

    @tool
    def get_payment_info(booking_id: str) -> dict:
        """Get payment information for a booking. Returns payment details (or a checkout link) when
        consumer payment is required, or reports that the booking is on-account and can be committed."""
        return manager.get_payment_info(booking_id).to_payload()

    @tool
    def commit_booking(booking_id: str, wait_for_confirmation: bool = False) -> dict:
        """Finalize (commit) a booking. Irreversible. PREREQUISITES: canCommit=true and, if payment is
        required, payment completed. Set wait_for_confirmation to wait up to ~30s for supplier
        confirmation; otherwise poll get_booking_status."""
        return manager.commit_booking(booking_id, wait_for_confirmation).to_payload()

    @tool
    def wait_for_booking_confirmation(booking_id: str) -> dict:
        """Wait (up to ~30s) for a committed, PENDING booking to be confirmed by the supplier."""
        return manager.wait_for_confirmation(booking_id).to_payload()

    @tool
    def get_booking_status(booking_id: str) -> dict:
        """Check the current status and phase of a booking, with the next action to take.
        An empty nextActions list means the booking flow is complete."""
        return manager.get_booking_status(booking_id).to_payload()

    return [
        check_availability,
        get_slot_options,
        answer_slot_options,
        get_slot_pricing,
        set_slot_pricing,
        configure_slot,
        create_booking,
        add_to_booking,
        get_booking_questions,
        answer_booking_questions,
        get_payment_info,
        commit_booking,
        wait_for_booking_confirmation,
        get_booking_status,
    ]
