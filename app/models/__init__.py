"""ORM model registry — importing this module registers every table on Base.metadata.

Application code can do::

    from app.models import Device, CropThreshold, LatestReading, ...
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from app.models.base import Base, SoilParameterColumnsMixin, TimestampMixin

# ── Enums ───────────────────────────────────────────────────────────────────
from app.models.enums import (
    ClassificationEnum,
    ReadingEventTypeEnum,
    SoilParameterEnum,
)

# ── Telemetry tables ────────────────────────────────────────────────────────
from app.models.telemetry import (
    AltCropRecommendation,
    CropThreshold,
    Device,
    HistoryLogEntry,
    LatestReading,
    ReadingBucket,
)

__all__ = [
    "AltCropRecommendation",
    # Base & mixins
    "Base",
    # Enums
    "ClassificationEnum",
    # Telemetry
    "CropThreshold",
    "Device",
    "HistoryLogEntry",
    "LatestReading",
    "ReadingBucket",
    "ReadingEventTypeEnum",
    "SoilParameterColumnsMixin",
    "SoilParameterEnum",
    "TimestampMixin",
]
