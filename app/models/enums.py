"""Enum types shared by ORM models, schemas and the advisory pipeline.

These are separate from the StrEnums in app/config.py; config enums
validate settings, these type telemetry data.
"""

from enum import StrEnum


class SoilParameterEnum(StrEnum):
    """Tracked soil channels, in the fixed order used for every advisory."""

    moist_pct = "moist_pct"
    temp_c = "temp_c"
    ec_ms = "ec_ms"
    ph = "ph"
    n_mgkg = "n_mgkg"
    p_mgkg = "p_mgkg"
    k_mgkg = "k_mgkg"


class ClassificationEnum(StrEnum):
    """Position of a reading relative to a threshold rule (bounds inclusive)."""

    low = "LOW"
    ok = "OK"
    high = "HIGH"


class ReadingEventTypeEnum(StrEnum):
    """Change kinds delivered on the live reading channel."""

    insert = "insert"
    update = "update"
