"""Telemetry ORM models — devices, crop thresholds, alt-crop rules, readings.

Table names follow the deployed schema the sensor gateway writes to:

    device         one row per field device, holds the persisted crop choice
    crop_thr       acceptable range per (crop, param)
    alt_crop_reco  condition bucket -> recommended substitute crop
    telem_rt       latest reading per (device, crop), upserted on ingest
    sens_rdg_30m   30-minute buckets maintained by the store itself
    sens_rdg_with_device  view joining buckets with device names (history log)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, SoilParameterColumnsMixin, TimestampMixin


class Device(Base, TimestampMixin):
    """Field device; ``cur_crop`` is the persisted crop preference."""

    __tablename__ = "device"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ing_tok: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cur_crop: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<Device id={self.id!r} cur_crop={self.cur_crop!r}>"


class CropThreshold(Base):
    """Acceptable range for one soil parameter under one crop.

    The composite primary key enforces at most one rule per (crop, param).
    """

    __tablename__ = "crop_thr"

    crop: Mapped[str] = mapped_column(String(64), primary_key=True)
    param: Mapped[str] = mapped_column(String(32), primary_key=True)
    val_min: Mapped[float] = mapped_column(Float, nullable=False)
    val_max: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")
    description: Mapped[str | None] = mapped_column("descr", Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CropThreshold crop={self.crop!r} param={self.param!r} "
            f"range=[{self.val_min}, {self.val_max}]>"
        )


class AltCropRecommendation(Base):
    """Maps an out-of-range condition bucket to a substitute crop."""

    __tablename__ = "alt_crop_reco"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    soil_param: Mapped[str] = mapped_column(String(64), nullable=False)
    reading_range: Mapped[str] = mapped_column(String(128), nullable=False)
    recommended_crop: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AltCropRecommendation {self.soil_param!r}/{self.reading_range!r} "
            f"-> {self.recommended_crop!r}>"
        )


class LatestReading(Base, SoilParameterColumnsMixin):
    """Most recent reading per (device, crop); the live channel mirrors its changes."""

    __tablename__ = "telem_rt"
    __table_args__ = (
        Index("ix_telem_rt_crop_upd_at", "crop", "upd_at"),
    )

    device_id: Mapped[str] = mapped_column(
        "dev_id",
        String(64),
        ForeignKey("device.id", ondelete="CASCADE"),
        primary_key=True,
    )
    crop: Mapped[str] = mapped_column(String(64), primary_key=True)
    updated_at: Mapped[datetime] = mapped_column(
        "upd_at", DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<LatestReading device={self.device_id!r} crop={self.crop!r} "
            f"ts={self.updated_at}>"
        )


class ReadingBucket(Base, SoilParameterColumnsMixin):
    """Pre-aggregated 30-minute bucket, read-only from this service's side."""

    __tablename__ = "sens_rdg_30m"

    bucket_start: Mapped[datetime] = mapped_column(
        "bkt_30m", DateTime(timezone=True), primary_key=True
    )
    crop: Mapped[str] = mapped_column(String(64), primary_key=True)

    def __repr__(self) -> str:
        return f"<ReadingBucket crop={self.crop!r} bkt={self.bucket_start}>"


class HistoryLogEntry(Base, SoilParameterColumnsMixin):
    """Bucketed readings joined with device metadata; maps a read-only view."""

    __tablename__ = "sens_rdg_with_device"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bucket_start: Mapped[datetime] = mapped_column("bkt_30m", DateTime(timezone=True), nullable=False)
    device_id: Mapped[str | None] = mapped_column("dev_id", String(64), nullable=True)
    crop: Mapped[str | None] = mapped_column(String(64), nullable=True)
    crop_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    src_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<HistoryLogEntry id={self.id} crop={self.crop_text!r} bkt={self.bucket_start}>"
