"""Payfast-related Pydantic schemas."""

from pydantic import BaseModel


class CheckoutPayloadResponse(BaseModel):
    """Signed fields to POST to the Payfast process page, in order."""

    process_url: str
    fields: list[tuple[str, str]]


class ITNAcknowledgement(BaseModel):
    """Body returned to Payfast for every notification."""

    received: bool = True
