import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError as PydanticValidationError

from course_payments.config import Settings
from course_payments.errors import ValidationError
from course_payments.models import AppendFormRequest, CreateOrderRequest, EnrollmentForm
from course_payments.reconciliation import Reconciler

logger = logging.getLogger("course_payments.routes")

router = APIRouter(prefix="/api/payment")

VERIFY_FIELDS = ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


async def _callback_params(request: Request) -> dict:
    if request.method == "GET":
        return dict(request.query_params)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("verify-payment body is not valid JSON",
                                  public_message="Missing required fields")
        return body if isinstance(body, dict) else {}

    form = await request.form()
    return dict(form)


@router.post("/create-order")
async def create_order(body: CreateOrderRequest, reconciler: Reconciler = Depends(get_reconciler)):
    order = await reconciler.create_order(body)
    return {"order": order.model_dump()}


@router.post("/append-form")
async def append_form(body: AppendFormRequest, reconciler: Reconciler = Depends(get_reconciler)):
    if not body.formData:
        raise ValidationError("append-form called without form data",
                              public_message="Form data is required")

    try:
        form = EnrollmentForm.model_validate(body.formData)
    except PydanticValidationError as e:
        raise ValidationError(f"append-form fields are not plain values: {e}",
                              public_message="Invalid form data")
    payment_link = await reconciler.start_checkout(form)
    return {"paymentLink": payment_link}


@router.api_route("/verify-payment", methods=["GET", "POST"])
async def verify_payment(
    request: Request,
    reconciler: Reconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
):
    params = await _callback_params(request)
    order_id, payment_id, signature = (params.get(name) for name in VERIFY_FIELDS)
    logger.info(f"Verifying payment {payment_id} for order {order_id} ({request.method})")

    await reconciler.verify_payment(order_id, payment_id, signature)
    return RedirectResponse(settings.success_redirect_url, status_code=302)


@router.get("/cancel-payment")
async def cancel_payment(
    order_id: Optional[str] = None,
    reconciler: Reconciler = Depends(get_reconciler),
    settings: Settings = Depends(get_settings),
):
    logger.info(f"Payment cancelled for order {order_id}")
    await reconciler.cancel(order_id)
    return RedirectResponse(settings.cancel_redirect_url, status_code=302)


@router.post("/webhook")
async def webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    reconciler: Reconciler = Depends(get_reconciler),
):
    payload = await request.body()
    await reconciler.handle_webhook(payload, x_razorpay_signature)
    return {"ok": True}
