from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal
from restaurant_ops.models import (
    DeviceStatus,
    EquipmentStatus,
    IoTDevice,
    MaintenancePriority,
    MaintenanceSchedule,
    MaintenanceStatus,
    MaintenanceType,
)
from restaurant_ops.services.audit_service import log_audit
from restaurant_ops.services.equipment_health_service import (
    MAX_HISTORY_SAMPLES,
    MaintenancePrediction,
    TelemetrySample,
    classify_health,
    compute_health_score,
    predict_maintenance,
)


logger = logging.getLogger(__name__)

OPEN_SCHEDULE_STATUSES = (MaintenanceStatus.SCHEDULED, MaintenanceStatus.DUE)
PENDING_SCHEDULE_STATUSES = (MaintenanceStatus.SCHEDULED, MaintenanceStatus.DUE, MaintenanceStatus.OVERDUE)
HISTORY_LIMIT = 50
AT_RISK_HEALTH = 0.7
STATUS_CLOCK_SKEW = timedelta(minutes=5)

ALLOWED_TRANSITIONS: dict[MaintenanceStatus, set[MaintenanceStatus]] = {
    MaintenanceStatus.SCHEDULED: {
        MaintenanceStatus.DUE,
        MaintenanceStatus.OVERDUE,
        MaintenanceStatus.IN_PROGRESS,
        MaintenanceStatus.CANCELLED,
    },
    MaintenanceStatus.DUE: {MaintenanceStatus.OVERDUE, MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.CANCELLED},
    MaintenanceStatus.OVERDUE: {MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.CANCELLED},
    MaintenanceStatus.IN_PROGRESS: {MaintenanceStatus.COMPLETED},
    MaintenanceStatus.COMPLETED: set(),
    MaintenanceStatus.CANCELLED: set(),
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _decimal_or_none(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def resolve_status_time(status_at: datetime | None, recorded_at: datetime) -> datetime:
    """Return the sample time in UTC, never later than ``recorded_at``."""
    if status_at is None:
        return recorded_at
    if status_at.tzinfo is None:
        raise ValueError('status_at must include a timezone offset')
    status_at = status_at.astimezone(timezone.utc)
    if status_at > recorded_at + STATUS_CLOCK_SKEW:
        raise ValueError('status_at cannot be in the future')
    return min(status_at, recorded_at)


def get_device(db: Session, *, device_id: int) -> IoTDevice | None:
    return db.execute(select(IoTDevice).where(IoTDevice.id == device_id)).scalar_one_or_none()


def record_equipment_status(
    db: Session,
    *,
    device: IoTDevice,
    payload: dict,
    now: datetime | None = None,
) -> tuple[EquipmentStatus, float]:
    recorded_at = now or _now()
    status_at = resolve_status_time(payload.get('status_at'), recorded_at)
    health_score = compute_health_score(TelemetrySample.from_mapping(payload))

    status_row = EquipmentStatus(
        device_id=device.id,
        is_running=bool(payload.get('is_running') or False),
        power_consumption=_decimal_or_none(payload.get('power_consumption')),
        cycle_count=int(payload.get('cycle_count') or 0),
        runtime_hours=_decimal_or_none(payload.get('runtime_hours')) or Decimal('0'),
        efficiency_percentage=_decimal_or_none(payload.get('efficiency_percentage')),
        temperature_avg=_decimal_or_none(payload.get('temperature_avg')),
        vibration_level=_decimal_or_none(payload.get('vibration_level')),
        error_count=int(payload.get('error_count') or 0),
        health_score=Decimal(str(round(health_score, 2))),
        status_data=dict(payload.get('status_data') or {}),
        error_codes=list(payload.get('error_codes') or []),
        status_at=status_at,
        created_at=recorded_at,
    )
    db.add(status_row)

    device.is_online = True
    device.last_seen_at = recorded_at
    device.status = DeviceStatus.ACTIVE
    device.updated_at = recorded_at
    db.flush()
    return status_row, health_score


def load_recent_history(db: Session, *, device_id: int, limit: int = MAX_HISTORY_SAMPLES) -> list[EquipmentStatus]:
    return db.execute(
        select(EquipmentStatus)
        .where(EquipmentStatus.device_id == device_id)
        .order_by(EquipmentStatus.status_at.desc(), EquipmentStatus.id.desc())
        .limit(limit)
    ).scalars().all()


def last_completed_maintenance_at(db: Session, *, device_id: int) -> datetime | None:
    return db.execute(
        select(MaintenanceSchedule.completed_at)
        .where(
            MaintenanceSchedule.device_id == device_id,
            MaintenanceSchedule.status == MaintenanceStatus.COMPLETED,
            MaintenanceSchedule.completed_at.is_not(None),
        )
        .order_by(MaintenanceSchedule.completed_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def generate_maintenance_prediction(db: Session, *, device_id: int, now: datetime | None = None) -> MaintenancePrediction:
    history = load_recent_history(db, device_id=device_id)
    return predict_maintenance(
        [TelemetrySample.from_row(row) for row in history],
        last_completed_at=last_completed_maintenance_at(db, device_id=device_id),
        now=now or _now(),
    )


def open_schedule_for_device(db: Session, *, device_id: int) -> MaintenanceSchedule | None:
    return db.execute(
        select(MaintenanceSchedule)
        .where(
            MaintenanceSchedule.device_id == device_id,
            MaintenanceSchedule.status.in_(OPEN_SCHEDULE_STATUSES),
        )
        .order_by(MaintenanceSchedule.scheduled_date.asc())
        .limit(1)
    ).scalar_one_or_none()


def schedule_preventive_maintenance(
    db: Session,
    *,
    device: IoTDevice,
    prediction: MaintenancePrediction,
    now: datetime | None = None,
) -> MaintenanceSchedule | None:
    if not prediction.should_schedule:
        return None
    if open_schedule_for_device(db, device_id=device.id):
        return None

    created_at = now or _now()
    factors = ', '.join(prediction.prediction_factors)
    schedule = MaintenanceSchedule(
        device_id=device.id,
        restaurant_id=device.restaurant_id,
        maintenance_type=MaintenanceType.PREDICTIVE,
        title=f'Predictive Maintenance - {device.device_name}',
        title_fr=f'Maintenance Prédictive - {device.device_name_fr or device.device_name}',
        description=f'Automated scheduling based on equipment condition analysis. Risk factors: {factors}',
        description_fr=f"Planification automatisée basée sur l'analyse de l'état de l'équipement. Facteurs de risque: {factors}",
        scheduled_date=created_at.date() + timedelta(days=prediction.days_until_maintenance or 7),
        estimated_duration_minutes=120,
        status=MaintenanceStatus.SCHEDULED,
        priority=MaintenancePriority(prediction.priority),
        predictive_score=Decimal(str(round(prediction.risk_score, 2))),
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(schedule)
    db.flush()
    logger.info(
        'Scheduled predictive maintenance %s for device %s (risk %.2f)',
        schedule.id,
        device.id,
        prediction.risk_score,
    )
    return schedule


def create_manual_maintenance(
    db: Session,
    *,
    principal: Principal,
    device: IoTDevice,
    maintenance_type: MaintenanceType,
    title: str,
    scheduled_date,
    priority: MaintenancePriority = MaintenancePriority.MEDIUM,
    description: str | None = None,
    estimated_duration_minutes: int = 60,
    assigned_to: int | None = None,
    ip: str | None = None,
) -> MaintenanceSchedule:
    if maintenance_type == MaintenanceType.PREDICTIVE:
        raise ValueError('Predictive maintenance is scheduled automatically')
    title = (title or '').strip()
    if not title:
        raise ValueError('Title is required')
    if estimated_duration_minutes <= 0:
        raise ValueError('Estimated duration must be greater than zero')

    now = _now()
    schedule = MaintenanceSchedule(
        device_id=device.id,
        restaurant_id=device.restaurant_id,
        maintenance_type=maintenance_type,
        title=title,
        description=description,
        scheduled_date=scheduled_date,
        estimated_duration_minutes=estimated_duration_minutes,
        status=MaintenanceStatus.SCHEDULED,
        priority=priority,
        assigned_to=assigned_to,
        created_by=principal.id,
        created_at=now,
        updated_at=now,
    )
    db.add(schedule)
    db.flush()
    log_audit(
        db,
        restaurant_id=device.restaurant_id,
        user_id=principal.id,
        action='MAINTENANCE_CREATED',
        resource_type='maintenance_schedule',
        resource_id=schedule.id,
        ip=ip,
        metadata={'device_id': device.id, 'maintenance_type': maintenance_type.value},
    )
    return schedule


def get_maintenance(db: Session, *, schedule_id: int) -> MaintenanceSchedule | None:
    return db.execute(select(MaintenanceSchedule).where(MaintenanceSchedule.id == schedule_id)).scalar_one_or_none()


def transition_maintenance(
    db: Session,
    *,
    principal: Principal,
    schedule: MaintenanceSchedule,
    status: MaintenanceStatus,
    notes: str | None = None,
    ip: str | None = None,
    now: datetime | None = None,
) -> MaintenanceSchedule:
    if status not in ALLOWED_TRANSITIONS[schedule.status]:
        raise ValueError(f'Cannot move maintenance from {schedule.status.value} to {status.value}')

    changed_at = now or _now()
    previous = schedule.status
    schedule.status = status
    schedule.updated_at = changed_at
    if status == MaintenanceStatus.IN_PROGRESS:
        schedule.started_at = changed_at
    elif status == MaintenanceStatus.COMPLETED:
        schedule.completed_at = changed_at
        schedule.completion_notes = notes

    log_audit(
        db,
        restaurant_id=schedule.restaurant_id,
        user_id=principal.id,
        action='MAINTENANCE_STATUS_CHANGED',
        resource_type='maintenance_schedule',
        resource_id=schedule.id,
        ip=ip,
        metadata={'from': previous.value, 'to': status.value},
    )
    return schedule


def serialize_status(row: EquipmentStatus, device: IoTDevice | None = None) -> dict:
    data = {
        'id': row.id,
        'device_id': row.device_id,
        'is_running': row.is_running,
        'power_consumption': float(row.power_consumption) if row.power_consumption is not None else None,
        'cycle_count': row.cycle_count,
        'runtime_hours': float(row.runtime_hours),
        'efficiency_percentage': float(row.efficiency_percentage) if row.efficiency_percentage is not None else None,
        'temperature_avg': float(row.temperature_avg) if row.temperature_avg is not None else None,
        'vibration_level': float(row.vibration_level) if row.vibration_level is not None else None,
        'error_count': row.error_count,
        'health_score': float(row.health_score),
        'status_data': row.status_data,
        'error_codes': row.error_codes,
        'status_at': row.status_at.isoformat(),
    }
    if device is not None:
        data['device'] = {
            'id': device.id,
            'device_name': device.device_name,
            'device_name_fr': device.device_name_fr,
            'device_type': device.device_type,
            'location': device.location,
        }
    return data


def serialize_schedule(schedule: MaintenanceSchedule) -> dict:
    return {
        'id': schedule.id,
        'device_id': schedule.device_id,
        'restaurant_id': schedule.restaurant_id,
        'maintenance_type': schedule.maintenance_type.value,
        'title': schedule.title,
        'title_fr': schedule.title_fr,
        'description': schedule.description,
        'scheduled_date': schedule.scheduled_date.isoformat(),
        'estimated_duration_minutes': schedule.estimated_duration_minutes,
        'status': schedule.status.value,
        'priority': schedule.priority.value,
        'predictive_score': float(schedule.predictive_score) if schedule.predictive_score is not None else None,
        'assigned_to': schedule.assigned_to,
        'started_at': schedule.started_at.isoformat() if schedule.started_at else None,
        'completed_at': schedule.completed_at.isoformat() if schedule.completed_at else None,
        'completion_notes': schedule.completion_notes,
    }


def equipment_overview(
    db: Session,
    *,
    restaurant_id: int,
    device_id: int | None = None,
    include_history: bool = False,
    include_predictions: bool = False,
    maintenance_due: bool = False,
    now: datetime | None = None,
) -> dict:
    now = now or _now()
    query = (
        select(EquipmentStatus, IoTDevice)
        .join(IoTDevice, IoTDevice.id == EquipmentStatus.device_id)
        .where(IoTDevice.restaurant_id == restaurant_id)
        .order_by(EquipmentStatus.status_at.desc(), EquipmentStatus.id.desc())
    )
    if device_id is not None:
        query = query.where(EquipmentStatus.device_id == device_id)

    latest: dict[int, tuple[EquipmentStatus, IoTDevice]] = {}
    for status_row, device in db.execute(query).all():
        latest.setdefault(status_row.device_id, (status_row, device))

    result: dict = {
        'equipment_status': [serialize_status(row, device) for row, device in latest.values()],
    }

    if include_history and device_id is not None:
        result['history'] = [
            serialize_status(row) for row in load_recent_history(db, device_id=device_id, limit=HISTORY_LIMIT)
        ]

    if include_predictions:
        result['maintenance_predictions'] = [
            {'device_id': key, **generate_maintenance_prediction(db, device_id=key, now=now).as_dict()}
            for key in latest
        ]

    if maintenance_due or device_id is not None:
        schedule_query = select(MaintenanceSchedule).where(MaintenanceSchedule.restaurant_id == restaurant_id)
        if device_id is not None:
            schedule_query = schedule_query.where(MaintenanceSchedule.device_id == device_id)
        if maintenance_due:
            schedule_query = schedule_query.where(MaintenanceSchedule.status.in_(PENDING_SCHEDULE_STATUSES))
        schedules = db.execute(schedule_query.order_by(MaintenanceSchedule.scheduled_date.asc())).scalars().all()
        result['maintenance_schedules'] = [serialize_schedule(schedule) for schedule in schedules]

    devices = [
        {
            'device_id': row.device_id,
            'device_name': device.device_name,
            'health_score': float(row.health_score),
            'prediction': classify_health(float(row.health_score)),
        }
        for row, device in latest.values()
    ]
    result['health_summary'] = {
        'average_health': (sum(item['health_score'] for item in devices) / len(devices)) if devices else None,
        'devices_at_risk': sum(1 for item in devices if item['health_score'] < AT_RISK_HEALTH),
        'maintenance_required': sum(1 for item in devices if item['prediction'] == 'maintenance_due'),
        'devices': devices,
    }
    return result
