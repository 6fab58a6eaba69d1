from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal
from restaurant_ops.config import Settings
from restaurant_ops.models import Restaurant, RoyaltyReport, RoyaltyReportStatus
from restaurant_ops.services.audit_service import log_audit


CENT = Decimal('0.01')


@dataclass(frozen=True)
class FranchiseTerms:
    royalty_rate_percent: Decimal
    marketing_fee_rate_percent: Decimal
    minimum_royalty: Decimal
    payment_days: int = 30
    late_payment_fee_rate: Decimal = Decimal('0.015')

    @classmethod
    def from_settings(cls, settings: Settings) -> 'FranchiseTerms':
        return cls(
            royalty_rate_percent=settings.royalty_rate_percent,
            marketing_fee_rate_percent=settings.marketing_fee_rate_percent,
            minimum_royalty=settings.minimum_royalty,
            payment_days=settings.royalty_payment_days,
            late_payment_fee_rate=settings.late_payment_fee_rate,
        )

    def as_dict(self) -> dict:
        return {
            'royalty_rate_percent': str(self.royalty_rate_percent),
            'marketing_fee_rate_percent': str(self.marketing_fee_rate_percent),
            'minimum_royalty': str(self.minimum_royalty),
            'payment_days': self.payment_days,
            'late_payment_fee_rate': str(self.late_payment_fee_rate),
        }


@dataclass(frozen=True)
class RevenueInput:
    gross_revenue: Decimal
    net_revenue: Decimal
    exempt_revenue: Decimal = Decimal('0')
    adjustments: list[Decimal] = field(default_factory=list)


@dataclass(frozen=True)
class RoyaltyCalculation:
    calculation_base: Decimal
    royalty_amount: Decimal
    marketing_fee: Decimal
    total_due: Decimal
    late_payment_fee: Decimal
    minimum_royalty_applied: bool

    def as_dict(self) -> dict:
        return {
            'calculation_base': str(self.calculation_base),
            'royalty_amount': str(self.royalty_amount),
            'marketing_fee': str(self.marketing_fee),
            'total_due': str(self.total_due),
            'late_payment_fee': str(self.late_payment_fee),
            'minimum_royalty_applied': self.minimum_royalty_applied,
        }


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_royalties(revenue: RevenueInput, terms: FranchiseTerms) -> RoyaltyCalculation:
    if revenue.gross_revenue < 0 or revenue.net_revenue < 0 or revenue.exempt_revenue < 0:
        raise ValueError('Revenue figures cannot be negative')

    # Adjustments always reduce the base regardless of sign.
    adjustment_total = sum((abs(amount) for amount in revenue.adjustments), Decimal('0'))
    base = max(Decimal('0'), revenue.gross_revenue - revenue.exempt_revenue - adjustment_total)

    royalty = base * terms.royalty_rate_percent / Decimal('100')
    marketing_fee = _money(base * terms.marketing_fee_rate_percent / Decimal('100'))
    minimum_applied = royalty < terms.minimum_royalty
    if minimum_applied:
        royalty = terms.minimum_royalty
    royalty = _money(royalty)
    total_due = royalty + marketing_fee

    return RoyaltyCalculation(
        calculation_base=_money(base),
        royalty_amount=royalty,
        marketing_fee=marketing_fee,
        total_due=total_due,
        late_payment_fee=_money(total_due * terms.late_payment_fee_rate),
        minimum_royalty_applied=minimum_applied,
    )


def create_royalty_report(
    db: Session,
    *,
    restaurant: Restaurant,
    period_start: date,
    period_end: date,
    revenue: RevenueInput,
    terms: FranchiseTerms,
    principal: Principal,
    ip: str | None = None,
    now: datetime | None = None,
) -> RoyaltyReport:
    if not restaurant.is_franchise:
        raise LookupError('Franchise not found')
    if period_end < period_start:
        raise ValueError('Reporting period end must not be before its start')

    calculated_at = now or datetime.now(tz=timezone.utc)
    calculation = calculate_royalties(revenue, terms)
    report = RoyaltyReport(
        restaurant_id=restaurant.id,
        period_start=period_start,
        period_end=period_end,
        calculation={**calculation.as_dict(), 'calculated_at': calculated_at.isoformat()},
        franchise_terms=terms.as_dict(),
        status=RoyaltyReportStatus.CALCULATED,
        due_date=calculated_at.date() + timedelta(days=terms.payment_days),
        processed_by=principal.id,
        created_at=calculated_at,
    )
    db.add(report)
    db.flush()

    log_audit(
        db,
        restaurant_id=restaurant.id,
        user_id=principal.id,
        action='ROYALTY_CALCULATED',
        resource_type='royalty_report',
        resource_id=report.id,
        ip=ip,
        metadata={
            'total_due': str(calculation.total_due),
            'minimum_royalty_applied': calculation.minimum_royalty_applied,
        },
    )
    return report


def serialize_report(report: RoyaltyReport) -> dict:
    return {
        'id': report.id,
        'restaurant_id': report.restaurant_id,
        'reporting_period': {
            'start_date': report.period_start.isoformat(),
            'end_date': report.period_end.isoformat(),
        },
        'royalty_calculation': report.calculation,
        'franchise_terms': report.franchise_terms,
        'status': report.status.value,
        'due_date': report.due_date.isoformat(),
        'payment_reference': f'ROY-{report.id:08d}',
    }
