"""Threshold classification and the two advisory texts.

Everything here is a pure function of its inputs: the same reading, rule
table and alt-crop rules always produce the same output.

Two rule sets are involved. The crop-treatment advisory is driven by
the per-crop threshold table; the alternative-crop suggestion is driven by
``ALT_CROP_CONDITIONS``, a fixed condition table whose limits do not follow
the threshold bounds.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from app.models.enums import ClassificationEnum, SoilParameterEnum
from app.schemas.live import Advisory, ParameterFinding, ParameterStatus
from app.schemas.telemetry import AltCropRule, Reading, ThresholdRule
from app.services.alt_crop_rules import find_alt_crop_rule

# (label, display unit) per parameter, in advisory order.
PARAMETER_INFO: dict[SoilParameterEnum, tuple[str, str]] = {
	SoilParameterEnum.moist_pct: ("Moisture", "%"),
	SoilParameterEnum.temp_c: ("Temperature", "°C"),
	SoilParameterEnum.ec_ms: ("EC", "mS/cm"),
	SoilParameterEnum.ph: ("pH", ""),
	SoilParameterEnum.n_mgkg: ("Nitrogen", "mg/kg"),
	SoilParameterEnum.p_mgkg: ("Phosphorus", "mg/kg"),
	SoilParameterEnum.k_mgkg: ("Potassium", "mg/kg"),
}

CROP_WAITING = (
	"Waiting for real-time sensor data. Once readings are available, this area will "
	"highlight which parameters are below or above the optimal range for the selected crop."
)
CROP_DOING_WELL = "• The selected crop is doing well. Maintain your current practices."
ALT_WAITING = (
	"Alternative crop suggestions will appear here once stable soil readings are available. "
	"For now, focus on reaching the optimal ranges for the selected crop."
)
ALT_DOING_WELL = (
	"• The selected crop is doing well. If issues arise, consider alternative crops "
	"like Lemongrass or Okra based on soil conditions."
)


@dataclass(frozen=True)
class AltCropCondition:
	"""A fixed trigger mapped to one ``(soil_param, reading_range)`` key."""

	parameter: SoilParameterEnum
	comparison: Literal["below", "above"]
	limit: float
	soil_param: str
	reading_range: str

	def triggered(self, value: float) -> bool:
		if self.comparison == "below":
			return value < self.limit
		return value > self.limit


ALT_CROP_CONDITIONS: tuple[AltCropCondition, ...] = (
	AltCropCondition(SoilParameterEnum.moist_pct, "below", 40.0, "Soil Moisture", "<40% (dry)"),
	AltCropCondition(SoilParameterEnum.temp_c, "above", 30.0, "Soil Temperature", ">30° C (hot soil)"),
	AltCropCondition(SoilParameterEnum.ec_ms, "above", 2.0, "EC", "High EC (>2.0 mS/cm)"),
)


def classify(value: float, rule: ThresholdRule) -> ClassificationEnum:
	if value < rule.val_min:
		return ClassificationEnum.low
	if value > rule.val_max:
		return ClassificationEnum.high
	return ClassificationEnum.ok


def _fmt(value: float) -> str:
	return f"{value:g}"


def evaluate(reading: Reading, thresholds: Mapping[str, ThresholdRule]) -> list[ParameterFinding]:
	"""Classify every parameter that has both a value and a rule."""
	findings: list[ParameterFinding] = []
	for parameter, (label, default_unit) in PARAMETER_INFO.items():
		value = reading.value_of(parameter)
		rule = thresholds.get(parameter.value)
		if value is None or rule is None:
			continue
		findings.append(
			ParameterFinding(
				parameter=parameter,
				label=label,
				classification=classify(value, rule),
				value=value,
				unit=rule.unit or default_unit,
				val_min=rule.val_min,
				val_max=rule.val_max,
				description=rule.description,
			)
		)
	return findings


def format_finding(finding: ParameterFinding) -> str:
	unit_suffix = f" {finding.unit}" if finding.unit else ""
	line = (
		f"• {finding.label} is {finding.classification.value} "
		f"({_fmt(finding.value)}{unit_suffix}; optimal {_fmt(finding.val_min)}-{_fmt(finding.val_max)}{unit_suffix})."
	)
	if finding.description:
		line = f"{line} {finding.description}"
	return line


def build_crop_advisory(reading: Reading | None, thresholds: Mapping[str, ThresholdRule]) -> str:
	if reading is None:
		return CROP_WAITING
	issues = [
		format_finding(finding)
		for finding in evaluate(reading, thresholds)
		if finding.classification != ClassificationEnum.ok
	]
	if not issues:
		return CROP_DOING_WELL
	return "\n".join(issues)


def recommended_crops(
	reading: Reading,
	thresholds: Mapping[str, ThresholdRule],
	alt_rules: Sequence[AltCropRule],
	conditions: Sequence[AltCropCondition] = ALT_CROP_CONDITIONS,
) -> list[str]:
	"""Crops suggested by the triggered conditions, deduplicated in trigger order."""
	crops: list[str] = []
	for condition in conditions:
		value = reading.value_of(condition.parameter)
		if value is None or condition.parameter.value not in thresholds:
			continue
		if not condition.triggered(value):
			continue
		rule = find_alt_crop_rule(alt_rules, condition.soil_param, condition.reading_range)
		if rule is not None and rule.recommended_crop not in crops:
			crops.append(rule.recommended_crop)
	return crops


def build_alt_crop_advisory(
	reading: Reading | None,
	thresholds: Mapping[str, ThresholdRule],
	alt_rules: Sequence[AltCropRule],
	conditions: Sequence[AltCropCondition] = ALT_CROP_CONDITIONS,
) -> str:
	if reading is None:
		return ALT_WAITING
	crops = recommended_crops(reading, thresholds, alt_rules, conditions)
	if not crops:
		return ALT_DOING_WELL
	return (
		"• Based on your current soil conditions, consider switching to one of the "
		f"following alternative crops: {', '.join(crops)}."
	)


def build_advisory(
	reading: Reading | None,
	thresholds: Mapping[str, ThresholdRule],
	alt_rules: Sequence[AltCropRule],
	conditions: Sequence[AltCropCondition] = ALT_CROP_CONDITIONS,
) -> Advisory:
	if reading is None:
		return Advisory(
			status="waiting",
			crop_treatment=CROP_WAITING,
			alternative_crop=ALT_WAITING,
		)

	findings = evaluate(reading, thresholds)
	out_of_range = [finding for finding in findings if finding.classification != ClassificationEnum.ok]
	return Advisory(
		status="attention" if out_of_range else "ok",
		crop_treatment=build_crop_advisory(reading, thresholds),
		alternative_crop=build_alt_crop_advisory(reading, thresholds, alt_rules, conditions),
		findings=out_of_range,
		recommended_crops=recommended_crops(reading, thresholds, alt_rules, conditions),
	)


def parameter_statuses(reading: Reading | None, thresholds: Mapping[str, ThresholdRule]) -> list[ParameterStatus]:
	"""Per-parameter gauge view; ``gauge_pct`` is the raw value clamped to 0..100."""
	statuses: list[ParameterStatus] = []
	for parameter, (label, default_unit) in PARAMETER_INFO.items():
		value = reading.value_of(parameter) if reading is not None else None
		rule = thresholds.get(parameter.value)
		statuses.append(
			ParameterStatus(
				parameter=parameter,
				label=label,
				unit=default_unit,
				value=value,
				classification=classify(value, rule) if value is not None and rule is not None else None,
				gauge_pct=max(0.0, min(100.0, value)) if value is not None else 0.0,
			)
		)
	return statuses
