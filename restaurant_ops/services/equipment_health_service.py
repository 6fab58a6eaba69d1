"""Equipment health scoring and maintenance prediction.

Both are explainable heuristics with fixed weights, not learned models. Risk
is accumulated in ``Decimal`` so the ``> 0.4`` scheduling threshold and the
half-up rounding of the maintenance window are exact.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


HIGH_VIBRATION_LEVEL = 10.0
OVERHEAT_CRITICAL_C = 80.0
OVERHEAT_WARNING_C = 60.0
ONE_YEAR_HOURS = 8760.0

MIN_HISTORY_SAMPLES = 5
MAX_HISTORY_SAMPLES = 30
TREND_WINDOW = 10
DECLINING_HEALTH_SLOPE = -0.02
INCREASING_ERRORS_SLOPE = 0.1
HIGH_RUNTIME_HOURS = 8000.0
LOW_EFFICIENCY_PERCENT = 70.0
OVERDUE_MAINTENANCE_DAYS = 90.0
DEFAULT_DAYS_SINCE_MAINTENANCE = 365.0
SCHEDULE_RISK_THRESHOLD = Decimal('0.4')
HIGH_PRIORITY_RISK = Decimal('0.7')

RISK_WEIGHTS = {
    'declining_health': Decimal('0.3'),
    'increasing_errors': Decimal('0.2'),
    'high_runtime': Decimal('0.2'),
    'low_efficiency': Decimal('0.15'),
    'overdue_maintenance': Decimal('0.1'),
}

FACTOR_ACTIONS = {
    'declining_health': 'Perform comprehensive equipment inspection',
    'increasing_errors': 'Check error logs and diagnose fault patterns',
    'high_runtime': 'Schedule extended maintenance window for component replacement',
    'low_efficiency': 'Clean and calibrate equipment components',
    'overdue_maintenance': 'Schedule immediate preventive maintenance',
}
COOLING_CHECK_ACTION = 'Check cooling systems and ventilation'
MECHANICAL_CHECK_ACTION = 'Inspect mounting and mechanical components'
DEFAULT_ACTION = 'Continue regular monitoring'
COOLING_CHECK_TEMPERATURE_C = 60.0
MECHANICAL_CHECK_VIBRATION = 5.0


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True)
class TelemetrySample:
    health_score: float = 1.0
    error_count: int = 0
    runtime_hours: float = 0.0
    efficiency_percentage: float | None = None
    temperature_avg: float | None = None
    vibration_level: float | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'TelemetrySample':
        health = data.get('health_score')
        return cls(
            health_score=1.0 if health is None else float(health),
            error_count=int(data.get('error_count') or 0),
            runtime_hours=float(data.get('runtime_hours') or 0),
            efficiency_percentage=_to_float(data.get('efficiency_percentage')),
            temperature_avg=_to_float(data.get('temperature_avg')),
            vibration_level=_to_float(data.get('vibration_level')),
        )

    @classmethod
    def from_row(cls, row: Any) -> 'TelemetrySample':
        return cls(
            health_score=float(row.health_score),
            error_count=int(row.error_count or 0),
            runtime_hours=float(row.runtime_hours or 0),
            efficiency_percentage=_to_float(row.efficiency_percentage),
            temperature_avg=_to_float(row.temperature_avg),
            vibration_level=_to_float(row.vibration_level),
        )


@dataclass(frozen=True)
class MaintenancePrediction:
    confidence: float
    risk_score: float
    should_schedule: bool
    prediction_factors: list[str]
    recommended_actions: list[str] = field(default_factory=list)
    days_until_maintenance: int | None = None

    @property
    def priority(self) -> str:
        return 'high' if Decimal(str(self.risk_score)) > HIGH_PRIORITY_RISK else 'medium'

    def as_dict(self) -> dict:
        return {
            'confidence': self.confidence,
            'risk_score': self.risk_score,
            'days_until_maintenance': self.days_until_maintenance,
            'should_schedule': self.should_schedule,
            'prediction_factors': list(self.prediction_factors),
            'recommended_actions': list(self.recommended_actions),
        }


def compute_health_score(sample: TelemetrySample) -> float:
    score = 1.0

    if sample.efficiency_percentage is not None:
        score *= 0.3 + 0.7 * (sample.efficiency_percentage / 100)

    if sample.error_count > 0:
        score -= min(sample.error_count * 0.1, 0.5)

    if sample.vibration_level is not None and sample.vibration_level > HIGH_VIBRATION_LEVEL:
        score -= 0.2

    if sample.temperature_avg is not None:
        if sample.temperature_avg > OVERHEAT_CRITICAL_C:
            score -= 0.3
        elif sample.temperature_avg > OVERHEAT_WARNING_C:
            score -= 0.1

    if sample.runtime_hours > ONE_YEAR_HOURS:
        score -= min((sample.runtime_hours - ONE_YEAR_HOURS) / ONE_YEAR_HOURS * 0.2, 0.3)

    return max(0.0, min(1.0, score))


def calculate_trend(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = sum(values) / n
    numerator = sum((x - x_mean) * (y - y_mean) for x, y in enumerate(values))
    denominator = sum((x - x_mean) ** 2 for x in range(n))
    return 0.0 if denominator == 0 else numerator / denominator


def recommended_actions(factors: Sequence[str], latest: TelemetrySample) -> list[str]:
    actions = [FACTOR_ACTIONS[factor] for factor in FACTOR_ACTIONS if factor in factors]
    if latest.temperature_avg is not None and latest.temperature_avg > COOLING_CHECK_TEMPERATURE_C:
        actions.append(COOLING_CHECK_ACTION)
    if latest.vibration_level is not None and latest.vibration_level > MECHANICAL_CHECK_VIBRATION:
        actions.append(MECHANICAL_CHECK_ACTION)
    return actions or [DEFAULT_ACTION]


def days_since(last_completed_at: datetime | None, now: datetime) -> float:
    if last_completed_at is None:
        return DEFAULT_DAYS_SINCE_MAINTENANCE
    return (now - last_completed_at).total_seconds() / 86400


def predict_maintenance(
    history: Sequence[TelemetrySample],
    *,
    last_completed_at: datetime | None,
    now: datetime,
) -> MaintenancePrediction:
    """Score maintenance risk from ``history`` ordered newest first.

    Trends are taken over the newest-first sequence exactly as stored, so a
    negative health slope means scores fall from the newest sample towards the
    older ones.
    """
    history = list(history)[:MAX_HISTORY_SAMPLES]
    if len(history) < MIN_HISTORY_SAMPLES:
        return MaintenancePrediction(
            confidence=0.1,
            risk_score=0.0,
            should_schedule=False,
            prediction_factors=['insufficient_data'],
        )

    latest = history[0]
    recent = history[:TREND_WINDOW]
    factors: list[str] = []

    if calculate_trend([sample.health_score for sample in recent]) < DECLINING_HEALTH_SLOPE:
        factors.append('declining_health')
    if calculate_trend([sample.error_count for sample in recent]) > INCREASING_ERRORS_SLOPE:
        factors.append('increasing_errors')
    if latest.runtime_hours > HIGH_RUNTIME_HOURS:
        factors.append('high_runtime')
    if latest.efficiency_percentage is not None and latest.efficiency_percentage < LOW_EFFICIENCY_PERCENT:
        factors.append('low_efficiency')
    # No completed maintenance counts as 365 days, so it always adds this factor.
    if days_since(last_completed_at, now) > OVERDUE_MAINTENANCE_DAYS:
        factors.append('overdue_maintenance')

    risk = sum((RISK_WEIGHTS[factor] for factor in factors), Decimal('0'))
    should_schedule = risk > SCHEDULE_RISK_THRESHOLD
    days_until = None
    if should_schedule:
        window = (Decimal('30') * (Decimal('1') - risk)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        days_until = max(1, int(window))

    return MaintenancePrediction(
        confidence=min(len(history) / MAX_HISTORY_SAMPLES, 1.0),
        risk_score=float(risk),
        should_schedule=should_schedule,
        prediction_factors=factors,
        recommended_actions=recommended_actions(factors, latest),
        days_until_maintenance=days_until,
    )


def classify_health(health_score: float) -> str:
    if health_score < 0.3:
        return 'critical'
    if health_score < 0.5:
        return 'maintenance_due'
    if health_score < 0.7:
        return 'monitoring_required'
    return 'good'


def critical_alerts(health_score: float, error_count: int) -> list[dict]:
    alerts = []
    if health_score < 0.3:
        alerts.append(
            {
                'type': 'critical_health',
                'message': f'Equipment health critically low: {round(health_score * 100)}%',
            }
        )
    if error_count > 5:
        alerts.append(
            {
                'type': 'high_error_rate',
                'message': f'High error count detected: {error_count} errors',
            }
        )
    return alerts
