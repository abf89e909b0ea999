"""Customer, order, location and user records read by the settlement core."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin


class OrderStatus:
    """Order status values consulted by invoicing."""

    OPEN = "OPEN"
    FILLED = "FILLED"
    CLOSED = "CLOSED"


class Customer(Base, TimestampMixin):
    """Billed customer."""

    __tablename__ = "customer"

    customer_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    requires_invoice_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class Location(Base, TimestampMixin):
    """Job site."""

    __tablename__ = "location"

    location_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    customer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customer.customer_id"), nullable=True
    )
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)


class Trade(Base):
    """Craft classification (electrician, pipefitter, ...)."""

    __tablename__ = "trade"

    trade_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class Order(Base, TimestampMixin):
    """Staffing order placed by a customer at a job site."""

    __tablename__ = "staffing_order"

    order_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    customer_id: Mapped[UUID] = mapped_column(
        ForeignKey("customer.customer_id"), nullable=False
    )
    location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("location.location_id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default=OrderStatus.OPEN)
    job_location_code: Mapped[str | None] = mapped_column(String, nullable=True)
    sd_bill_delta_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4), nullable=True
    )

    # Relationships
    customer: Mapped[Customer] = relationship()
    location: Mapped[Location | None] = relationship()


class AppUser(Base, TimestampMixin):
    """Salesperson, worker or staff user."""

    __tablename__ = "app_user"

    user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)

    profile: Mapped[EmployeeProfile | None] = relationship(back_populates="user")


class EmployeeProfile(Base, TimestampMixin):
    """Payroll identity for a worker."""

    __tablename__ = "employee_profile"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id", ondelete="CASCADE"), primary_key=True
    )
    ssn: Mapped[str | None] = mapped_column(String, nullable=True)

    user: Mapped[AppUser] = relationship(back_populates="profile")
