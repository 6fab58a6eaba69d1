"""Request bodies for the JSON API."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class StaffPinLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Format checks happen in the service so they share one error path.
    pin: str | None = None
    location_session_id: str | None = Field(default=None, alias='locationSessionId')
    device_fingerprint: str | None = Field(default=None, alias='deviceFingerprint')


class BindLocationSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_fingerprint: str = Field(alias='deviceFingerprint', min_length=1, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    restaurant_id: int | None = Field(default=None, alias='restaurantId')


class EquipmentStatusRequest(BaseModel):
    device_id: int | None = None
    is_running: bool = False
    power_consumption: float | None = None
    cycle_count: int = Field(default=0, ge=0)
    runtime_hours: float = Field(default=0, ge=0)
    efficiency_percentage: float | None = Field(default=None, ge=0, le=100)
    temperature_avg: float | None = None
    vibration_level: float | None = Field(default=None, ge=0)
    error_count: int = Field(default=0, ge=0)
    status_data: dict[str, Any] = Field(default_factory=dict)
    error_codes: list[str] = Field(default_factory=list)
    status_at: AwareDatetime | None = None


class MaintenanceCreateRequest(BaseModel):
    device_id: int
    maintenance_type: Literal['reactive', 'routine']
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    scheduled_date: date
    priority: Literal['low', 'medium', 'high', 'critical'] = 'medium'
    estimated_duration_minutes: int = Field(default=60, gt=0)
    assigned_to: int | None = None


class MaintenanceStatusRequest(BaseModel):
    status: Literal['due', 'overdue', 'in_progress', 'completed', 'cancelled']
    completion_notes: str | None = Field(default=None, max_length=2000)


class RevenueAdjustment(BaseModel):
    type: Literal['discount', 'refund', 'promotion', 'other']
    amount: Decimal
    description: str = Field(default='', max_length=200)


class RevenueData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gross_revenue: Decimal = Field(alias='grossRevenue', ge=0)
    net_revenue: Decimal = Field(alias='netRevenue', ge=0)
    exempt_revenue: Decimal = Field(default=Decimal('0'), alias='exemptRevenue', ge=0)
    adjustments: list[RevenueAdjustment] = Field(default_factory=list)


class ReportingPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(alias='startDate')
    end_date: date = Field(alias='endDate')


class RoyaltyCalculationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    restaurant_id: int = Field(alias='restaurantId')
    reporting_period: ReportingPeriod = Field(alias='reportingPeriod')
    revenue_data: RevenueData = Field(alias='revenueData')
    certified_accurate: bool = Field(alias='certifiedAccurate')
