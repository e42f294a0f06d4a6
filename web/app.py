from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from booking_errors import classify_error, is_payment_unavailable
from booking_state import compute_booking_phase, dump_actions, next_actions_for_booking
from config import Settings
from payments.checkout import CheckoutTokenPayload, validate_checkout_token
from supplier_client import SupplierClient

EXPIRED_DETAIL = (
    "This checkout link is invalid or has expired. "
    "Ask for a new payment link (get_payment_info) to continue."
)

# maps the caller credential embedded in a token to a supplier client for that partner
ClientFactory = Callable[[str], SupplierClient]


def create_app(client_factory: ClientFactory, settings: Optional[Settings] = None) -> FastAPI:
    """
    Human-facing checkout surface. A checkout token is the only credential:
    it names the booking and the partner credential whose supplier account holds it.
    """
    settings = settings or Settings.from_env()
    app = FastAPI(title="Experience booking checkout")

    def _payload(token: str) -> CheckoutTokenPayload:
        payload = validate_checkout_token(token, settings.token_secret)
        if payload is None:
            raise HTTPException(status_code=410, detail=EXPIRED_DETAIL)
        return payload

    @app.get("/checkout/{token}")
    def checkout(token: str):
        payload = _payload(token)
        client = client_factory(payload.api_key)
        try:
            intent = client.get_payment_intent(payload.booking_id)
        except Exception as e:
            if is_payment_unavailable(e):
                return JSONResponse(content={
                    "bookingId": payload.booking_id,
                    "status": "no_payment_required",
                })
            classified = classify_error(e, {"bookingId": payload.booking_id})
            raise HTTPException(status_code=502, detail=classified.message)

        return JSONResponse(content={
            "bookingId": payload.booking_id,
            "status": "payment_required",
            "amountMinor": intent.amount,
            "amount": intent.amount / 100,
            "currency": intent.currency or payload.currency,
            "paymentIntentId": intent.id,
            "clientSecret": intent.client_secret,
            "publishableKey": intent.publishable_key,
            "expiresAt": payload.expires_at_ms,
        })

    @app.get("/checkout/{token}/status")
    def checkout_status(token: str):
        payload = _payload(token)
        booking = client_factory(payload.api_key).get_booking(payload.booking_id)
        if booking is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        phase = compute_booking_phase(booking)
        return JSONResponse(content={
            "bookingId": booking.id,
            "bookingCode": booking.code,
            "state": booking.state,
            "paymentState": booking.payment_state,
            "bookingPhase": phase.value,
            "voucherUrl": booking.voucher_url,
            "nextActions": dump_actions(next_actions_for_booking(phase)),
        })

    return app
