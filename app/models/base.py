"""ORM base class and mixins — all models inherit from Base."""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base — shared MetaData registry for all models."""

    pass


class SoilParameterColumnsMixin:
    """The seven nullable soil channels shared by live and bucketed telemetry.

    Column names match the device firmware payload keys, so a sensor that
    omits a channel simply leaves the column NULL.
    """

    ph: Mapped[float | None] = mapped_column(nullable=True)
    moist_pct: Mapped[float | None] = mapped_column(nullable=True)
    temp_c: Mapped[float | None] = mapped_column(nullable=True)
    ec_ms: Mapped[float | None] = mapped_column(nullable=True)
    n_mgkg: Mapped[float | None] = mapped_column(nullable=True)
    p_mgkg: Mapped[float | None] = mapped_column(nullable=True)
    k_mgkg: Mapped[float | None] = mapped_column(nullable=True)


class TimestampMixin:
    """Adds created_at / updated_at audit columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
