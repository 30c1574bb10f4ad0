"""Payfast checkout and ITN endpoints."""

import html
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_db, get_payfast_config, get_payload_builder, get_reconciliation_handler
from storefront.core.middleware import get_client_ip
from storefront.gateways.payfast.config import PayfastConfig
from storefront.gateways.payfast.payload import CheckoutPayload, PayloadBuilder
from storefront.schemas.payfast import CheckoutPayloadResponse, ITNAcknowledgement
from storefront.services.reconciliation_service import ReconciliationHandler

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== CHECKOUT ====================


@router.post("/checkout/{order_id}", response_model=CheckoutPayloadResponse)
async def create_checkout(
    order_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    builder: Annotated[PayloadBuilder, Depends(get_payload_builder)],
    config: Annotated[PayfastConfig, Depends(get_payfast_config)],
) -> CheckoutPayloadResponse:
    """Get the signed Payfast form fields for a pending order."""
    fields = await builder.build(db, order_id)
    return CheckoutPayloadResponse(process_url=config.process_url, fields=fields)


@router.get("/checkout/{order_id}/redirect", response_class=HTMLResponse)
async def checkout_redirect(
    order_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    builder: Annotated[PayloadBuilder, Depends(get_payload_builder)],
    config: Annotated[PayfastConfig, Depends(get_payfast_config)],
) -> HTMLResponse:
    """Auto-submitting form that hands the customer over to Payfast."""
    fields = await builder.build(db, order_id)
    return HTMLResponse(_render_redirect_form(config.process_url, fields))


def _render_redirect_form(process_url: str, fields: CheckoutPayload) -> str:
    inputs = "\n".join(
        f'      <input type="hidden" name="{html.escape(name)}" value="{html.escape(value)}">'
        for name, value in fields
    )
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>Redirecting to Payfast</title></head>
  <body onload="document.forms[0].submit()">
    <p>Redirecting to Payfast&hellip;</p>
    <form action="{html.escape(process_url)}" method="post">
{inputs}
      <noscript><button type="submit">Continue to Payfast</button></noscript>
    </form>
  </body>
</html>
"""


# ==================== ITN ====================


@router.post("/notify", response_model=ITNAcknowledgement, status_code=status.HTTP_200_OK)
async def payfast_notify(
    request: Request,
    handler: Annotated[ReconciliationHandler, Depends(get_reconciliation_handler)],
) -> ITNAcknowledgement:
    """Receive a Payfast ITN.

    Always answers 200 so Payfast stops retrying; the outcome is only logged.
    """
    client_ip = get_client_ip(request)
    try:
        raw_body = await request.body()
    except Exception as e:
        logger.error(f"Could not read ITN body from {client_ip}: {e}")
        return ITNAcknowledgement()

    outcome = await handler.handle(raw_body, client_ip)
    logger.info(
        f"ITN from {client_ip}: {outcome.status}"
        + (f" ({outcome.reason})" if outcome.reason else "")
        + (f" order {outcome.order_id}" if outcome.order_id else "")
    )
    return ITNAcknowledgement()


@router.get("/notify")
async def payfast_notify_get() -> JSONResponse:
    """Browsers hitting the notify URL get a pointer instead of a 404."""
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"detail": "Payfast notifications must be sent with POST"},
        headers={"Allow": "POST"},
    )
