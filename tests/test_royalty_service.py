from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

from restaurant_ops.auth import Principal, Role
from restaurant_ops.models import AuditLog, RoyaltyReport
from restaurant_ops.services.royalty_service import (
    FranchiseTerms,
    RevenueInput,
    calculate_royalties,
    create_royalty_report,
    serialize_report,
)


TERMS = FranchiseTerms(
    royalty_rate_percent=Decimal('6.5'),
    marketing_fee_rate_percent=Decimal('2.5'),
    minimum_royalty=Decimal('500'),
)
PRINCIPAL = Principal(
    id=7, email='manager@example.com', role=Role.MANAGER, restaurant_id=1, full_name='Manager', active=True
)


class RoyaltyCalculationTests(unittest.TestCase):
    def test_rates_apply_to_gross_less_exempt_and_adjustments(self) -> None:
        revenue = RevenueInput(
            gross_revenue=Decimal('100000'),
            net_revenue=Decimal('90000'),
            exempt_revenue=Decimal('5000'),
            adjustments=[Decimal('-1000'), Decimal('500')],
        )
        result = calculate_royalties(revenue, TERMS)
        self.assertEqual(result.calculation_base, Decimal('93500.00'))
        self.assertEqual(result.royalty_amount, Decimal('6077.50'))
        self.assertEqual(result.marketing_fee, Decimal('2337.50'))
        self.assertEqual(result.total_due, Decimal('8415.00'))
        self.assertEqual(result.late_payment_fee, Decimal('126.23'))
        self.assertFalse(result.minimum_royalty_applied)

    def test_minimum_royalty_applies_to_small_base(self) -> None:
        revenue = RevenueInput(gross_revenue=Decimal('2000'), net_revenue=Decimal('2000'))
        result = calculate_royalties(revenue, TERMS)
        self.assertTrue(result.minimum_royalty_applied)
        self.assertEqual(result.royalty_amount, Decimal('500.00'))
        self.assertEqual(result.marketing_fee, Decimal('50.00'))
        self.assertEqual(result.total_due, Decimal('550.00'))

    def test_base_never_goes_negative(self) -> None:
        revenue = RevenueInput(
            gross_revenue=Decimal('100'),
            net_revenue=Decimal('100'),
            exempt_revenue=Decimal('80'),
            adjustments=[Decimal('50')],
        )
        result = calculate_royalties(revenue, TERMS)
        self.assertEqual(result.calculation_base, Decimal('0.00'))
        self.assertEqual(result.marketing_fee, Decimal('0.00'))
        self.assertEqual(result.royalty_amount, Decimal('500.00'))

    def test_negative_revenue_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            calculate_royalties(RevenueInput(gross_revenue=Decimal('-1'), net_revenue=Decimal('0')), TERMS)


class RoyaltyReportTests(unittest.TestCase):
    def _db(self) -> MagicMock:
        db = MagicMock()

        def _flush() -> None:
            for call in db.add.call_args_list:
                row = call.args[0]
                if isinstance(row, RoyaltyReport) and row.id is None:
                    row.id = 42

        db.flush.side_effect = _flush
        return db

    def test_non_franchise_restaurant_is_not_found(self) -> None:
        restaurant = SimpleNamespace(id=1, is_franchise=False)
        with self.assertRaises(LookupError):
            create_royalty_report(
                self._db(),
                restaurant=restaurant,
                period_start=date(2024, 5, 1),
                period_end=date(2024, 5, 31),
                revenue=RevenueInput(gross_revenue=Decimal('1000'), net_revenue=Decimal('1000')),
                terms=TERMS,
                principal=PRINCIPAL,
            )

    def test_inverted_period_is_rejected(self) -> None:
        restaurant = SimpleNamespace(id=1, is_franchise=True)
        with self.assertRaises(ValueError):
            create_royalty_report(
                self._db(),
                restaurant=restaurant,
                period_start=date(2024, 5, 31),
                period_end=date(2024, 5, 1),
                revenue=RevenueInput(gross_revenue=Decimal('1000'), net_revenue=Decimal('1000')),
                terms=TERMS,
                principal=PRINCIPAL,
            )

    def test_report_is_due_thirty_days_after_calculation_and_audited(self) -> None:
        db = self._db()
        restaurant = SimpleNamespace(id=1, is_franchise=True)
        report = create_royalty_report(
            db,
            restaurant=restaurant,
            period_start=date(2024, 5, 1),
            period_end=date(2024, 5, 31),
            revenue=RevenueInput(gross_revenue=Decimal('20000'), net_revenue=Decimal('20000')),
            terms=TERMS,
            principal=PRINCIPAL,
            now=datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc),
        )
        self.assertEqual(report.due_date, date(2024, 7, 3))
        self.assertEqual(report.calculation['royalty_amount'], '1300.00')

        audits = [call.args[0] for call in db.add.call_args_list if isinstance(call.args[0], AuditLog)]
        self.assertEqual(len(audits), 1)
        self.assertEqual(audits[0].action, 'ROYALTY_CALCULATED')
        self.assertEqual(audits[0].resource_id, '42')

        payload = serialize_report(report)
        self.assertEqual(payload['payment_reference'], 'ROY-00000042')
        self.assertEqual(payload['status'], 'calculated')
