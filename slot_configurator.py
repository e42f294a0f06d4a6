import logging
from typing import Callable, Dict, List, Optional, Sequence

from booking_errors import classify_error
from booking_schemas import AvailabilityDetail, OptionAnswer, PricingAssignment, ToolResponse
from booking_state import SlotPhase, compute_slot_phase, dump_actions, next_actions_for_slot
from formatting import format_availability_detail, format_money, format_slot
from supplier_client import SupplierClient

logger = logging.getLogger(__name__)


def pricing_violations(avail: AvailabilityDetail) -> List[str]:
    """
    Describe every min/max bound the current unit assignment breaks.
    Informational only: the supplier's isValid stays the source of truth.
    """
    cats = avail.pricing_categories or []
    if not cats:
        return []
    out = []
    if sum(c.units for c in cats) == 0:
        out.append("No units assigned; at least one participant is required")
    for c in cats:
        if c.min_participants is not None and c.units < c.min_participants:
            out.append(f"{c.label}: {c.units} units is below the minimum of {c.min_participants}")
        if c.max_participants is not None and c.units > c.max_participants:
            out.append(f"{c.label}: {c.units} units is above the maximum of {c.max_participants}")
    return out


def availability_to_structured(avail: AvailabilityDetail) -> Dict:
    phase = compute_slot_phase(avail)
    return {
        "slotId": avail.id,
        "date": avail.date,
        "startTime": avail.start_time,
        "optionsComplete": avail.options_complete,
        "options": [
            {
                "id": o.id,
                "label": o.label,
                "dataType": o.data_type,
                "answered": o.answered,
                "answerValue": o.answer_value,
                "answerText": o.answer_text or o.answer_value,
                "choices": [{"value": c.value, "label": c.label} for c in o.choices],
            }
            for o in avail.options or []
        ],
        "pricingCategories": [
            {
                "id": c.id,
                "label": c.label,
                "unitPrice": format_money(c.unit_price, c.currency),
                "units": c.units,
                "min": c.min_participants,
                "max": c.max_participants,
                "totalPrice": format_money(c.total_price, c.currency),
            }
            for c in avail.pricing_categories or []
        ],
        "totalPrice": format_money(avail.total_price, avail.currency),
        "isValid": avail.is_valid,
        "slotPhase": phase.value,
        "pricingViolations": pricing_violations(avail),
        "nextActions": dump_actions(next_actions_for_slot(phase)),
    }


class SlotConfigurator:
    """
    Drives one availability slot from "selected" to "valid for booking".
    Holds no state of its own; every call reads or writes through the supplier.
    """

    def __init__(self, client: SupplierClient):
        self.client = client

    def _slot_response(self, avail: AvailabilityDetail, lead: str = "") -> ToolResponse:
        text = format_availability_detail(avail, pricing_violations(avail))
        if lead:
            text = f"{lead}\n\n{text}"
        return ToolResponse(text=text, structured=availability_to_structured(avail))

    def _failure(self, error: Exception, action: str, slot_id: str) -> ToolResponse:
        classified = classify_error(error, {"slotId": slot_id})
        return ToolResponse.failure(
            f"Error {action}: {classified.message}",
            classified.to_tool_error(),
            slotId=slot_id,
        )

    def _call(self, action: str, slot_id: str, fn: Callable[[], AvailabilityDetail]):
        try:
            return fn(), None
        except Exception as e:
            return None, self._failure(e, action, slot_id)

    def lookup_slots(self, experience_id: str, date_from: str, date_to: str) -> ToolResponse:
        try:
            slots = self.client.get_availability_list(experience_id, date_from, date_to)
        except Exception as e:
            classified = classify_error(e, {"experienceId": experience_id})
            return ToolResponse.failure(
                f"Error checking availability: {classified.message}",
                classified.to_tool_error(),
                experienceId=experience_id,
            )

        if slots:
            sections = [f"## Available Dates ({len(slots)})\n"]
            sections.extend(format_slot(s) for s in slots)
            sections.append(
                "\n**Next step:** Pick a slot ID above and use `get_slot_options` to see what "
                "options need configuring (time slot, variant, etc.) before booking."
            )
            actions = [{"tool": "get_slot_options", "reason": "Configure a chosen slot before booking"}]
        else:
            sections = ["No available dates found in this range. Try different dates."]
            actions = [{"tool": "check_availability", "reason": "Try a different date range"}]

        return ToolResponse(
            text="\n".join(sections),
            structured={
                "experienceId": experience_id,
                "slots": [
                    {
                        "id": s.id,
                        "date": s.date,
                        "startTime": s.start_time,
                        "price": format_money(s.guide_price, s.currency),
                        "soldOut": s.sold_out,
                    }
                    for s in slots
                ],
                "nextActions": actions,
            },
        )

    def get_slot_options(self, slot_id: str) -> ToolResponse:
        avail, failure = self._call("fetching slot options", slot_id, lambda: self.client.get_availability(slot_id))
        return failure or self._slot_response(avail)

    def answer_slot_options(self, slot_id: str, answers: Sequence[OptionAnswer]) -> ToolResponse:
        avail, failure = self._call(
            "answering slot options", slot_id, lambda: self.client.set_availability_options(slot_id, answers)
        )
        return failure or self._slot_response(avail)

    def get_slot_pricing(self, slot_id: str) -> ToolResponse:
        avail, failure = self._call(
            "fetching slot pricing", slot_id, lambda: self.client.get_availability_pricing(slot_id)
        )
        if failure:
            return failure
        lead = ""
        if not avail.options_complete:
            lead = "**Options are not complete yet.** Pricing may be missing until every required option is answered."
        return self._slot_response(avail, lead)

    def set_slot_pricing(self, slot_id: str, assignments: Sequence[PricingAssignment]) -> ToolResponse:
        avail, failure = self._call(
            "setting slot pricing", slot_id, lambda: self.client.set_availability_pricing(slot_id, assignments)
        )
        return failure or self._slot_response(avail)

    def configure_slot(
        self,
        slot_id: str,
        options: Optional[Sequence[OptionAnswer]] = None,
        pricing: Optional[Sequence[PricingAssignment]] = None,
    ) -> ToolResponse:
        """
        Answer options, then (only if they came out complete) assign pricing.
        Returns early in OPTIONS_INCOMPLETE rather than touching pricing.
        """
        if options:
            avail, failure = self._call(
                "answering slot options", slot_id, lambda: self.client.set_availability_options(slot_id, options)
            )
        else:
            avail, failure = self._call(
                "fetching slot options", slot_id, lambda: self.client.get_availability(slot_id)
            )
        if failure:
            return failure

        if compute_slot_phase(avail) in (SlotPhase.SELECTED, SlotPhase.OPTIONS_INCOMPLETE):
            logger.info("Slot %s options still incomplete; pricing not attempted", slot_id)
            return self._slot_response(
                avail, "**Options still incomplete.** Pricing was not set; answer the remaining options first."
            )

        if pricing:
            avail, failure = self._call(
                "setting slot pricing", slot_id, lambda: self.client.set_availability_pricing(slot_id, pricing)
            )
        else:
            avail, failure = self._call(
                "fetching slot pricing", slot_id, lambda: self.client.get_availability_pricing(slot_id)
            )
        return failure or self._slot_response(avail)
