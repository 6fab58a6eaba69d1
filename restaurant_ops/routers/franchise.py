from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, Role, assert_restaurant_scope, require_role
from restaurant_ops.config import Settings
from restaurant_ops.db import get_db
from restaurant_ops.dependencies import get_client_ip, get_settings, store_failure
from restaurant_ops.errors import NotFound, ValidationFailed
from restaurant_ops.models import Restaurant
from restaurant_ops.schemas import RoyaltyCalculationRequest
from restaurant_ops.security.csrf import verify_csrf
from restaurant_ops.services.royalty_service import (
    FranchiseTerms,
    RevenueInput,
    create_royalty_report,
    serialize_report,
)

router = APIRouter(prefix='/franchise', tags=['franchise'])


@router.post('/royalties', status_code=201)
def calculate_royalty_report(
    body: RoyaltyCalculationRequest,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN, Role.MANAGER)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: None = Depends(verify_csrf),
):
    if not body.certified_accurate:
        raise ValidationFailed('Revenue data must be certified as accurate')
    assert_restaurant_scope(principal, body.restaurant_id)

    revenue = RevenueInput(
        gross_revenue=body.revenue_data.gross_revenue,
        net_revenue=body.revenue_data.net_revenue,
        exempt_revenue=body.revenue_data.exempt_revenue,
        adjustments=[item.amount for item in body.revenue_data.adjustments],
    )
    try:
        restaurant = db.execute(select(Restaurant).where(Restaurant.id == body.restaurant_id)).scalar_one_or_none()
        if not restaurant:
            raise NotFound('Franchise not found')
        report = create_royalty_report(
            db,
            restaurant=restaurant,
            period_start=body.reporting_period.start_date,
            period_end=body.reporting_period.end_date,
            revenue=revenue,
            terms=FranchiseTerms.from_settings(settings),
            principal=principal,
            ip=get_client_ip(request),
        )
        db.commit()
    except LookupError as exc:
        db.rollback()
        raise NotFound(str(exc)) from exc
    except ValueError as exc:
        db.rollback()
        raise ValidationFailed(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'calculate_royalty_report', restaurant_id=body.restaurant_id) from exc

    return {'success': True, 'data': serialize_report(report)}
