# sitebuilder/routers/callback.py
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from sitebuilder.core.container import get_verify_service
from sitebuilder.database import get_session
from sitebuilder.models.enums import CallVerifyUrl
from sitebuilder.services.payment_service import VerifyService

# Registered without the API version prefix: the URL is handed to the
# gateways when a payment starts and has to stay stable.
router = APIRouter(prefix="/payment/callback", tags=["Payment callback"])


async def _callback_params(request: Request) -> dict:
    """
    Gateways call back either with a GET query string or a form POST;
    merge both, form fields win.
    """
    params = dict(request.query_params)
    content_type = request.headers.get("content-type", "")
    if request.method == "POST" and (
        content_type.startswith("application/x-www-form-urlencoded")
        or content_type.startswith("multipart/form-data")
    ):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


@router.api_route("/{call_verify_url}", methods=["GET", "POST"])
async def payment_callback(
    call_verify_url: CallVerifyUrl,
    request: Request,
    session: Session = Depends(get_session),
    service: VerifyService = Depends(get_verify_service),
):
    """
    Verify a payment with its gateway and send the browser back to the
    front end with `success`, `tracking_number` and `status` appended.

    Duplicate callbacks return the outcome of the first one.
    A 502 means the gateway could not be reached; the payment stays
    pending and the callback can be retried.
    """
    params = await _callback_params(request)
    outcome = await run_in_threadpool(service.verify_payment, session, call_verify_url, params)
    return RedirectResponse(outcome.redirect_url(), status_code=302)
