"""Land development lot model."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_workflow.models.base import Base, IdMixin, TimestampMixin
from erp_workflow.workflow.statuses import LotStatus, status_check_sql


class DevelopmentLot(Base, IdMixin, TimestampMixin):
    """A parcel of a land development, sold or reserved individually."""

    __tablename__ = "development_lot"

    development_name: Mapped[str] = mapped_column(String, nullable=False)
    lot_number: Mapped[str] = mapped_column(String, nullable=False)
    block_number: Mapped[str | None] = mapped_column(String, nullable=True)
    area: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False, default="habitation")
    status: Mapped[str] = mapped_column(String, nullable=False, default=LotStatus.AVAILABLE.value)

    __table_args__ = (
        UniqueConstraint("development_name", "lot_number", name="development_lot_number_unique"),
        CheckConstraint(status_check_sql(LotStatus), name="development_lot_status_check"),
        CheckConstraint("price >= 0", name="development_lot_price_check"),
        CheckConstraint("area > 0", name="development_lot_area_check"),
    )
