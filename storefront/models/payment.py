"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.order import Order


class Payment(Base):
    """Payment record for an order."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Method
    method: Mapped[str] = mapped_column(String(30), nullable=False, default="payfast")

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="initiated"
    )  # initiated, completed, failed

    # Gateway
    transaction_id: Mapped[str | None] = mapped_column(Text)  # pf_payment_id
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    meta: Mapped[dict | None] = mapped_column(JSON)  # raw ITN payload for audit

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="payment")
