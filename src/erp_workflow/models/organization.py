"""Agency and user models."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from erp_workflow.models.base import Base, IdMixin, TimestampMixin


class Agency(Base, IdMixin, TimestampMixin):
    """A branch office; agency-scoped records are validated by its managers."""

    __tablename__ = "agency"

    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)


class User(Base, IdMixin, TimestampMixin):
    """Application user with a flat permission list."""

    __tablename__ = "app_user"

    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default="user")
    permissions: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    agency_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="app_user_role_check"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" or "admin.access" in self.permissions

    def has_permission(self, permission: str) -> bool:
        """Check a permission, honoring the admin bypass."""
        return self.is_admin or permission in self.permissions
