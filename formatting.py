"""Markdown narratives returned alongside the structured payloads."""

from typing import List, Optional

from booking_schemas import AvailabilityDetail, Booking, BookingQuestion, PricingCategory, Slot, SlotOption


def format_money(amount: Optional[float], currency: str) -> Optional[str]:
    if amount is None:
        return None
    return f"{currency} {amount:.2f}"


def format_slot(slot: Slot) -> str:
    parts = [f"- **{slot.date}** (Slot ID: `{slot.id}`)"]
    if slot.start_time:
        parts.append(f"  Start time: {slot.start_time}")
    if slot.guide_price is not None:
        parts.append(f"  Guide price: {format_money(slot.guide_price, slot.currency)}")
    if slot.sold_out:
        parts.append("  **SOLD OUT**")
    return "\n".join(parts)


def format_option(opt: SlotOption) -> str:
    parts = [f"- **{opt.label}** (ID: `{opt.id}`)"]
    if opt.answered:
        parts.append(f"  Answer: {opt.answer_text or opt.answer_value}")
    if opt.data_type:
        parts.append(f"  Data type: {opt.data_type}")
    if opt.choices:
        parts.append("  Available choices:")
        for choice in opt.choices:
            parts.append(f"    - value: `{choice.value}` ({choice.label})")
    return "\n".join(parts)


def format_category(cat: PricingCategory) -> str:
    parts = [f"- **{cat.label}** (ID: `{cat.id}`)"]
    if cat.unit_price is not None:
        parts.append(f"  Unit price: {format_money(cat.unit_price, cat.currency)}")
    parts.append(f"  Units: {cat.units}")
    if cat.min_participants is not None:
        parts.append(f"  Min: {cat.min_participants}")
    if cat.max_participants is not None:
        parts.append(f"  Max: {cat.max_participants}")
    if cat.total_price is not None:
        parts.append(f"  Total: {format_money(cat.total_price, cat.currency)}")
    return "\n".join(parts)


def format_availability_detail(avail: AvailabilityDetail, violations: Optional[List[str]] = None) -> str:
    sections = [f"**Slot ID:** `{avail.id}`", f"**Date:** {avail.date}"]
    if avail.start_time:
        sections.append(f"**Start time:** {avail.start_time}")

    if avail.options is not None:
        complete = avail.options_complete
        sections.append(f"\n**Options complete:** {'YES' if complete else 'NO'}")
        unanswered = [o for o in avail.options if not o.answered]
        answered = [o for o in avail.options if o.answered]
        if unanswered:
            sections.append("\n## Options to Answer")
            sections.append("Use `answer_slot_options` with the slot ID and option selections:")
            sections.extend(format_option(o) for o in unanswered)
        if answered:
            sections.append("\n## Confirmed Selections")
            sections.extend(f"- {o.label}: {o.answer_text or o.answer_value}" for o in answered)
        if complete and not avail.is_valid:
            sections.append("\n**Options complete!** Next: use `get_slot_pricing` to see pricing categories and set participant counts.")

    if avail.pricing_categories:
        sections.append("\n## Pricing Categories")
        sections.extend(format_category(c) for c in avail.pricing_categories)

    if avail.total_price is not None:
        sections.append(f"\n**Total price:** {format_money(avail.total_price, avail.currency)}")
    if avail.options is not None:
        sections.append(f"**Valid for booking:** {'YES' if avail.is_valid else 'NO'}")
    if violations:
        sections.append("\n**Pricing constraints not met:**")
        sections.extend(f"- {v}" for v in violations)
    if avail.is_valid:
        sections.append("\n**Ready to book!** Use `create_booking` then `add_to_booking` with this slot ID.")

    return "\n".join(sections)


def format_question(q: BookingQuestion, prefix: str = "") -> str:
    required = " *required*" if q.required else ""
    parts = [f"{prefix}- **{q.label}** (ID: {q.id}, Type: {q.type}){required}"]
    if q.answer_value:
        parts.append(f"{prefix}  Current answer: {q.answer_value}")
    elif q.auto_complete_value:
        parts.append(f"{prefix}  Suggested: {q.auto_complete_value}")
    if q.choices:
        parts.append(f"{prefix}  Options:")
        parts.extend(f'{prefix}    - "{c.value}" ({c.label})' for c in q.choices)
    return "\n".join(parts)


def format_booking_summary(booking: Booking) -> str:
    sections = [f"**Booking ID:** {booking.id}"]
    if booking.code:
        sections.append(f"**Booking Code:** {booking.code}")
    sections.append(f"**State:** {booking.state}")
    ready = "Yes" if booking.can_commit else "No (answer all required questions first)"
    sections.append(f"**Ready to commit:** {ready}")
    if booking.lead_passenger_name:
        sections.append(f"**Lead Passenger:** {booking.lead_passenger_name}")
    if booking.payment_state:
        sections.append(f"**Payment State:** {booking.payment_state}")
    if booking.total_price is not None:
        sections.append(f"**Total:** {format_money(booking.total_price, booking.currency)}")

    if booking.items:
        sections.append("\n## Items in Booking")
        for item in booking.items:
            when = f" at {item.start_time}" if item.start_time else ""
            price = format_money(item.total_price, booking.currency) or ""
            sections.append(f"- **{item.product_name or 'Experience'}** on {item.date}{when} {price}".rstrip())

    if booking.voucher_url:
        sections.append(f"\n**Voucher:** {booking.voucher_url}")

    return "\n".join(sections)


def format_unanswered_questions(booking: Booking) -> str:
    """Unanswered questions grouped by scope, with their allowed choices."""
    sections = []
    pending = [q for q in booking.questions if not q.answered]
    if pending:
        sections.append("\n## Booking Questions")
        sections.extend(format_question(q) for q in pending)

    for item in booking.items:
        name = item.product_name or "Experience"
        pending = [q for q in item.questions if not q.answered]
        if pending:
            sections.append(f'\n## Questions for "{name}"')
            sections.extend(format_question(q) for q in pending)
        for person in item.persons:
            pending = [q for q in person.questions if not q.answered]
            if pending:
                label = person.pricing_category_label or "Guest"
                sections.append(f"\n## Questions for {label} (Person ID: {person.id})")
                sections.extend(format_question(q, "  ") for q in pending)

    return "\n".join(sections)
