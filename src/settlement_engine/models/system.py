"""System settings and audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import JSONType, Base, TimestampMixin, utcnow


class SystemSetting(Base):
    """Mutable business setting stored as JSON."""

    __tablename__ = "system_setting"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value_json: Mapped[Any] = mapped_column(JSONType, nullable=True)
    updated_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=utcnow, onupdate=utcnow
    )


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
