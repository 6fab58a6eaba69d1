from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from restaurant_ops.services.equipment_health_service import (
    COOLING_CHECK_ACTION,
    DEFAULT_ACTION,
    TelemetrySample,
    calculate_trend,
    classify_health,
    compute_health_score,
    critical_alerts,
    predict_maintenance,
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
RECENT_SERVICE = NOW - timedelta(days=10)


def _declining(count: int = 10, **fields) -> list[TelemetrySample]:
    # Newest first, scores fall by 0.05 per step towards the oldest sample.
    return [TelemetrySample(health_score=1.0 - 0.05 * index, **fields) for index in range(count)]


def _flat(count: int, **fields) -> list[TelemetrySample]:
    return [TelemetrySample(health_score=0.9, **fields) for _ in range(count)]


class HealthScoreTests(unittest.TestCase):
    def test_perfect_sample_scores_one(self) -> None:
        sample = TelemetrySample(
            efficiency_percentage=100, error_count=0, vibration_level=0, temperature_avg=50, runtime_hours=1000
        )
        self.assertEqual(compute_health_score(sample), 1.0)

    def test_heavily_penalised_sample_clamps_to_zero(self) -> None:
        sample = TelemetrySample(efficiency_percentage=50, error_count=6, vibration_level=15, temperature_avg=85)
        self.assertEqual(compute_health_score(sample), 0.0)

    def test_missing_fields_do_not_penalise(self) -> None:
        self.assertEqual(compute_health_score(TelemetrySample()), 1.0)

    def test_error_penalty_caps_at_half(self) -> None:
        self.assertAlmostEqual(compute_health_score(TelemetrySample(error_count=3)), 0.7)
        self.assertAlmostEqual(compute_health_score(TelemetrySample(error_count=50)), 0.5)

    def test_temperature_bands(self) -> None:
        self.assertAlmostEqual(compute_health_score(TelemetrySample(temperature_avg=60)), 1.0)
        self.assertAlmostEqual(compute_health_score(TelemetrySample(temperature_avg=61)), 0.9)
        self.assertAlmostEqual(compute_health_score(TelemetrySample(temperature_avg=81)), 0.7)

    def test_runtime_penalty_starts_after_one_year_and_caps(self) -> None:
        self.assertAlmostEqual(compute_health_score(TelemetrySample(runtime_hours=8760)), 1.0)
        self.assertAlmostEqual(compute_health_score(TelemetrySample(runtime_hours=8760 * 2)), 0.8)
        self.assertAlmostEqual(compute_health_score(TelemetrySample(runtime_hours=8760 * 10)), 0.7)

    def test_score_never_increases_as_inputs_worsen(self) -> None:
        base = {'efficiency_percentage': 90.0, 'error_count': 1, 'vibration_level': 2.0, 'temperature_avg': 40.0}
        worsening = {
            'error_count': [1, 2, 4, 8, 16],
            'vibration_level': [2.0, 9.0, 10.5, 30.0],
            'temperature_avg': [40.0, 61.0, 79.0, 81.0, 120.0],
            'runtime_hours': [0.0, 8760.0, 10000.0, 20000.0, 90000.0],
        }
        for field_name, values in worsening.items():
            scores = [compute_health_score(TelemetrySample(**{**base, field_name: value})) for value in values]
            for earlier, later in zip(scores, scores[1:]):
                self.assertGreaterEqual(earlier, later, field_name)
            for score in scores:
                self.assertTrue(0.0 <= score <= 1.0)


class TrendTests(unittest.TestCase):
    def test_slope_of_linear_series(self) -> None:
        self.assertAlmostEqual(calculate_trend([1.0, 0.9, 0.8, 0.7]), -0.1)
        self.assertAlmostEqual(calculate_trend([0, 1, 2, 3]), 1.0)

    def test_short_series_has_no_trend(self) -> None:
        self.assertEqual(calculate_trend([]), 0.0)
        self.assertEqual(calculate_trend([0.5]), 0.0)


class MaintenancePredictionTests(unittest.TestCase):
    def test_fewer_than_five_samples_is_low_confidence_and_never_schedules(self) -> None:
        history = [TelemetrySample(health_score=0.0, error_count=40, runtime_hours=99999, efficiency_percentage=1)] * 4
        prediction = predict_maintenance(history, last_completed_at=None, now=NOW)
        self.assertFalse(prediction.should_schedule)
        self.assertEqual(prediction.confidence, 0.1)
        self.assertEqual(prediction.prediction_factors, ['insufficient_data'])

    def test_decline_alone_does_not_schedule(self) -> None:
        prediction = predict_maintenance(_declining(), last_completed_at=RECENT_SERVICE, now=NOW)
        self.assertEqual(prediction.prediction_factors, ['declining_health'])
        self.assertAlmostEqual(prediction.risk_score, 0.3)
        self.assertFalse(prediction.should_schedule)
        self.assertIsNone(prediction.days_until_maintenance)

    def test_decline_with_low_efficiency_schedules(self) -> None:
        prediction = predict_maintenance(
            _declining(efficiency_percentage=60), last_completed_at=RECENT_SERVICE, now=NOW
        )
        self.assertEqual(prediction.prediction_factors, ['declining_health', 'low_efficiency'])
        self.assertAlmostEqual(prediction.risk_score, 0.45)
        self.assertTrue(prediction.should_schedule)
        # 30 * 0.55 = 16.5 rounds half up.
        self.assertEqual(prediction.days_until_maintenance, 17)
        self.assertEqual(prediction.priority, 'medium')

    def test_risk_exactly_at_threshold_does_not_schedule(self) -> None:
        prediction = predict_maintenance(_declining(), last_completed_at=None, now=NOW)
        self.assertEqual(prediction.prediction_factors, ['declining_health', 'overdue_maintenance'])
        self.assertAlmostEqual(prediction.risk_score, 0.4)
        self.assertFalse(prediction.should_schedule)

    def test_missing_maintenance_history_counts_as_overdue(self) -> None:
        prediction = predict_maintenance(_flat(5), last_completed_at=None, now=NOW)
        self.assertEqual(prediction.prediction_factors, ['overdue_maintenance'])
        self.assertEqual(prediction.recommended_actions, ['Schedule immediate preventive maintenance'])

    def test_all_factors_give_high_priority(self) -> None:
        history = [
            TelemetrySample(
                health_score=1.0 - 0.05 * index,
                error_count=index,
                runtime_hours=9000,
                efficiency_percentage=50,
                temperature_avg=65,
            )
            for index in range(10)
        ]
        prediction = predict_maintenance(history, last_completed_at=None, now=NOW)
        self.assertAlmostEqual(prediction.risk_score, 0.95)
        self.assertEqual(prediction.priority, 'high')
        self.assertEqual(prediction.days_until_maintenance, 2)
        self.assertIn(COOLING_CHECK_ACTION, prediction.recommended_actions)

    def test_confidence_grows_with_history(self) -> None:
        prediction = predict_maintenance(_flat(15), last_completed_at=RECENT_SERVICE, now=NOW)
        self.assertAlmostEqual(prediction.confidence, 0.5)
        self.assertEqual(prediction.recommended_actions, [DEFAULT_ACTION])
        self.assertFalse(prediction.should_schedule)

    def test_history_beyond_thirty_samples_is_ignored(self) -> None:
        prediction = predict_maintenance(_flat(45), last_completed_at=RECENT_SERVICE, now=NOW)
        self.assertEqual(prediction.confidence, 1.0)


class ClassificationTests(unittest.TestCase):
    def test_health_bands(self) -> None:
        self.assertEqual(classify_health(0.1), 'critical')
        self.assertEqual(classify_health(0.4), 'maintenance_due')
        self.assertEqual(classify_health(0.6), 'monitoring_required')
        self.assertEqual(classify_health(0.95), 'good')

    def test_critical_alerts(self) -> None:
        self.assertEqual(critical_alerts(0.8, 0), [])
        alerts = critical_alerts(0.2, 6)
        self.assertEqual([alert['type'] for alert in alerts], ['critical_health', 'high_error_rate'])
        self.assertEqual(alerts[0]['message'], 'Equipment health critically low: 20%')
