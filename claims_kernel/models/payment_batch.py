"""
Module: claims_kernel.models.payment_batch
Responsibility: ORM persistence for HR payment runs.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - batch_number is unique.
    - Batches are immutable once written (ORM listener); member claims
      point at the batch through Claim.payment_batch_id, set exactly once.
    - total_amount == sum of member claim amounts and total_claims == member
      count, both computed by PaymentService in the same flush.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claims_kernel.db.base import Base
from claims_kernel.db.types import Money

if TYPE_CHECKING:
    from claims_kernel.models.claim import Claim


class PaymentBatch(Base):
    """A named, immutable grouping of approved claims paid together."""

    __tablename__ = "payment_batches"

    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_payment_batch_number"),
    )

    # BATCH-<yyyymmdd>-<8 hex>
    batch_number: Mapped[str] = mapped_column(String(40), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    total_amount: Mapped[Money] = mapped_column(nullable=False)

    total_claims: Mapped[int] = mapped_column(Integer, nullable=False)

    generated_by: Mapped[str] = mapped_column(String(100), nullable=False)

    claims: Mapped[list["Claim"]] = relationship(
        viewonly=True,
        order_by="Claim.id",
    )

    def __repr__(self) -> str:
        return f"<PaymentBatch {self.batch_number}: {self.total_claims} claims, {self.total_amount}>"
