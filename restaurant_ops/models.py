from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back as UTC.

    SQLite drops tzinfo on storage; values are normalised to UTC on the way in
    and re-tagged on the way out so comparisons against aware datetimes work on
    every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == 'sqlite':
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    ADMIN = 'admin'
    MANAGER = 'manager'
    STAFF = 'staff'


class UserSessionType(str, Enum):
    STANDARD = 'standard'
    LOCATION_BOUND = 'location_bound'


class DeviceStatus(str, Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    MAINTENANCE = 'maintenance'
    ERROR = 'error'
    OFFLINE = 'offline'


class MaintenanceType(str, Enum):
    REACTIVE = 'reactive'
    PREDICTIVE = 'predictive'
    ROUTINE = 'routine'


class MaintenanceStatus(str, Enum):
    SCHEDULED = 'scheduled'
    DUE = 'due'
    OVERDUE = 'overdue'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class MaintenancePriority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class RoyaltyReportStatus(str, Enum):
    CALCULATED = 'calculated'
    PAID = 'paid'


class Restaurant(Base):
    __tablename__ = 'restaurants'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_fr: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False, default='UTC', server_default='UTC')
    is_franchise: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'auth_users'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(Text)
    pin_hash: Mapped[str | None] = mapped_column(Text)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, 'user_role'), nullable=False, default=UserRole.STAFF)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name_fr: Mapped[str | None] = mapped_column(String(255))
    position: Mapped[str | None] = mapped_column(String(100))
    restaurant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class LocationSession(Base):
    __tablename__ = 'location_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='location_sessions_session_token_key'),
        Index('ix_location_sessions_device_active', 'tablet_device_id', 'is_active'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    restaurant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    tablet_device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    bound_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deactivated_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_staff_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_staff_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class UserSession(Base):
    __tablename__ = 'user_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='user_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('auth_users.id', ondelete='CASCADE'), nullable=False)
    session_type: Mapped[UserSessionType] = mapped_column(
        _enum(UserSessionType, 'user_session_type'), nullable=False, default=UserSessionType.STANDARD
    )
    location_session_id: Mapped[str | None] = mapped_column(String(36), ForeignKey('location_sessions.id'))
    location_bound_restaurant_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('restaurants.id'))
    device_fingerprint: Mapped[str | None] = mapped_column(String(255))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime)


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    restaurant_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('restaurants.id'))
    location_session_id: Mapped[str | None] = mapped_column(String(36))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('restaurants.id'))
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(64))
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class IoTDevice(Base):
    __tablename__ = 'iot_devices'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    device_type: Mapped[str] = mapped_column(String(100), nullable=False)
    device_name: Mapped[str] = mapped_column(String(255), nullable=False)
    device_name_fr: Mapped[str | None] = mapped_column(String(255))
    location: Mapped[str | None] = mapped_column(String(255))
    zone: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[DeviceStatus] = mapped_column(
        _enum(DeviceStatus, 'iot_device_status'), nullable=False, default=DeviceStatus.INACTIVE
    )
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    last_seen_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    thresholds: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class EquipmentStatus(Base):
    __tablename__ = 'iot_equipment_status'
    __table_args__ = (
        Index('ix_iot_equipment_status_device_time', 'device_id', 'status_at'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('iot_devices.id', ondelete='CASCADE'), nullable=False)
    is_running: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    power_consumption: Mapped[Decimal | None] = mapped_column(Numeric(8, 3))
    cycle_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    runtime_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal('0'))
    efficiency_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    temperature_avg: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    vibration_level: Mapped[Decimal | None] = mapped_column(Numeric(8, 4))
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    health_score: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False, default=Decimal('1.00'))
    status_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_codes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class MaintenanceSchedule(Base):
    __tablename__ = 'iot_maintenance_schedule'
    __table_args__ = (
        Index('ix_iot_maintenance_schedule_device_status', 'device_id', 'status'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    device_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('iot_devices.id', ondelete='CASCADE'), nullable=False)
    restaurant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    maintenance_type: Mapped[MaintenanceType] = mapped_column(_enum(MaintenanceType, 'maintenance_type'), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    title_fr: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    description_fr: Mapped[str | None] = mapped_column(Text)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    estimated_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    status: Mapped[MaintenanceStatus] = mapped_column(
        _enum(MaintenanceStatus, 'iot_maintenance_status'), nullable=False, default=MaintenanceStatus.SCHEDULED
    )
    priority: Mapped[MaintenancePriority] = mapped_column(
        _enum(MaintenancePriority, 'maintenance_priority'), nullable=False, default=MaintenancePriority.MEDIUM
    )
    predictive_score: Mapped[Decimal | None] = mapped_column(Numeric(3, 2))
    assigned_to: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    created_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    completion_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())


class RoyaltyReport(Base):
    __tablename__ = 'royalty_reports'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('restaurants.id', ondelete='CASCADE'), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    calculation: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    franchise_terms: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[RoyaltyReportStatus] = mapped_column(
        _enum(RoyaltyReportStatus, 'royalty_report_status'), nullable=False, default=RoyaltyReportStatus.CALCULATED
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    processed_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('auth_users.id'))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, server_default=func.now())
