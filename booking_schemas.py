from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional


BookingState = Literal["OPEN", "PENDING", "CONFIRMED", "CANCELLED", "REJECTED"]


class SupplierModel(BaseModel):
    """Base for records shaped like the supplier's camelCase payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Choice(SupplierModel):
    value: str
    label: str


# --- Availability ---

class Slot(SupplierModel):
    id: str
    date: str
    start_time: Optional[str] = None
    sold_out: bool = False
    guide_price: Optional[float] = None
    currency: str = "GBP"


class SlotOption(SupplierModel):
    id: str
    label: str
    data_type: Optional[str] = None
    required: bool = True
    answer_value: Optional[str] = None
    answer_text: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)

    @property
    def answered(self) -> bool:
        return self.answer_value is not None and self.answer_value != ""


class PricingCategory(SupplierModel):
    id: str
    label: str
    unit_price: Optional[float] = None
    units: int = 0
    min_participants: Optional[int] = None
    max_participants: Optional[int] = None
    currency: str = "GBP"

    @property
    def total_price(self) -> Optional[float]:
        if self.unit_price is None:
            return None
        return round(self.unit_price * self.units, 2)


class AvailabilityDetail(SupplierModel):
    """
    Last-fetched snapshot of one slot with its options and pricing.
    options / pricing_categories are None when the supplier did not return them.
    """

    id: str
    date: str
    start_time: Optional[str] = None
    options: Optional[List[SlotOption]] = None
    pricing_categories: Optional[List[PricingCategory]] = None
    total_price: Optional[float] = None
    currency: str = "GBP"
    is_valid: bool = False

    @property
    def options_complete(self) -> bool:
        if self.options is None:
            return False
        return all(opt.answered for opt in self.options if opt.required)

    @model_validator(mode="after")
    def _valid_requires_complete_options(self):
        # a slot can never be valid for booking while its options are incomplete;
        # a valid slot sent without an options list has none left to answer
        if self.is_valid and self.options is None:
            self.options = []
        if self.is_valid and not self.options_complete:
            self.is_valid = False
        return self


class OptionAnswer(SupplierModel):
    id: str = Field(description="Option ID from get_slot_options")
    value: str = Field(description="The selected value; use a listed choice value when choices exist")


class PricingAssignment(SupplierModel):
    id: str = Field(description="Pricing category ID from get_slot_pricing")
    units: int = Field(ge=0, description="Number of participants/units for this category")


# --- Booking ---

class BookingQuestion(SupplierModel):
    id: str
    label: str
    type: str = "text"
    required: bool = False
    answer_value: Optional[str] = None
    auto_complete_value: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)

    @property
    def answered(self) -> bool:
        return bool(self.answer_value)


class BookingPerson(SupplierModel):
    id: str
    pricing_category_label: Optional[str] = None
    questions: List[BookingQuestion] = Field(default_factory=list)


class BookingItem(SupplierModel):
    """An availability attached to a booking basket."""

    id: str
    product_name: Optional[str] = None
    date: str
    start_time: Optional[str] = None
    total_price: Optional[float] = None
    questions: List[BookingQuestion] = Field(default_factory=list)
    persons: List[BookingPerson] = Field(default_factory=list)


class Booking(SupplierModel):
    id: str
    code: Optional[str] = None
    state: BookingState = "OPEN"
    can_commit: bool = False
    lead_passenger_name: Optional[str] = None
    payment_state: Optional[str] = None
    total_price: Optional[float] = None
    currency: str = "GBP"
    items: List[BookingItem] = Field(default_factory=list)
    questions: List[BookingQuestion] = Field(default_factory=list)
    voucher_url: Optional[str] = None


class QuestionAnswer(SupplierModel):
    question_id: str = Field(description="Question ID from get_booking_questions")
    value: str = Field(description="Answer value")


class PaymentIntent(SupplierModel):
    id: str
    amount: int  # minor units
    client_secret: str
    publishable_key: str
    currency: Optional[str] = None


# --- Tool responses ---

class NextAction(BaseModel):
    tool: str
    reason: str


class ToolError(BaseModel):
    code: str
    message: str
    next_actions: List[NextAction] = Field(default_factory=list)
    missing: Optional[List[str]] = None


class ToolResponse(BaseModel):
    """
    What every operation returns: a narrative for humans / LLMs plus a
    structured payload for programmatic callers.
    """

    text: str
    structured: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False

    @property
    def next_actions(self) -> List[Dict[str, str]]:
        return self.structured.get("nextActions", [])

    def to_payload(self) -> Dict[str, Any]:
        return {
            "content": self.text,
            "structuredContent": self.structured,
            "isError": self.is_error,
        }

    @classmethod
    def failure(cls, text: str, error: ToolError, **extra: Any) -> "ToolResponse":
        actions = [a.model_dump() for a in error.next_actions]
        err = {"code": error.code, "message": error.message, "nextActions": actions}
        if error.missing is not None:
            err["missing"] = list(error.missing)
        structured = {"error": err, "nextActions": actions, "isError": True}
        structured.update(extra)
        return cls(text=text, structured=structured, is_error=True)
