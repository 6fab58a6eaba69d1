import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restaurant_ops.auth import Principal, Role, assert_restaurant_scope, get_current_principal
from restaurant_ops.db import get_db
from restaurant_ops.dependencies import get_client_ip, store_failure
from restaurant_ops.errors import NotFound, PermissionDenied, ValidationFailed
from restaurant_ops.models import IoTDevice, MaintenancePriority, MaintenanceStatus, MaintenanceType
from restaurant_ops.schemas import EquipmentStatusRequest, MaintenanceCreateRequest, MaintenanceStatusRequest
from restaurant_ops.security.csrf import verify_csrf
from restaurant_ops.services import equipment_service
from restaurant_ops.services.equipment_health_service import critical_alerts

router = APIRouter(prefix='/iot', tags=['equipment'])
logger = logging.getLogger(__name__)


def _device_in_scope(db: Session, principal: Principal, device_id: int) -> IoTDevice:
    device = equipment_service.get_device(db, device_id=device_id)
    if not device:
        raise NotFound('Device not found')
    if principal.role != Role.ADMIN and device.restaurant_id != principal.restaurant_id:
        raise PermissionDenied('Access denied to this device')
    return device


@router.post('/equipment-status', status_code=201)
def report_equipment_status(
    body: EquipmentStatusRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if body.device_id is None:
        raise ValidationFailed('Device ID is required')

    try:
        device = _device_in_scope(db, principal, body.device_id)
        status_row, health_score = equipment_service.record_equipment_status(
            db, device=device, payload=body.model_dump()
        )
        prediction = equipment_service.generate_maintenance_prediction(db, device_id=device.id)
        scheduled = equipment_service.schedule_preventive_maintenance(db, device=device, prediction=prediction)
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise ValidationFailed(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'record_equipment_status', device_id=body.device_id) from exc

    alerts = critical_alerts(health_score, status_row.error_count)
    if alerts:
        logger.warning('Device %s reported %s critical alert(s)', device.id, len(alerts))

    data = {
        'equipment_status': equipment_service.serialize_status(status_row),
        'maintenance_prediction': prediction.as_dict(),
        'critical_alerts': alerts,
    }
    if scheduled is not None:
        data['scheduled_maintenance'] = equipment_service.serialize_schedule(scheduled)
    return {'success': True, 'data': data, 'message': 'Equipment status updated successfully'}


@router.get('/equipment-status')
def equipment_status_overview(
    device_id: int | None = None,
    include_history: bool = False,
    include_predictions: bool = False,
    maintenance_due: bool = False,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        restaurant_id = principal.restaurant_id
        if device_id is not None:
            restaurant_id = _device_in_scope(db, principal, device_id).restaurant_id
        data = equipment_service.equipment_overview(
            db,
            restaurant_id=restaurant_id,
            device_id=device_id,
            include_history=include_history,
            include_predictions=include_predictions,
            maintenance_due=maintenance_due,
        )
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'equipment_overview', device_id=device_id) from exc
    return {'success': True, 'data': data}


@router.post('/maintenance', status_code=201)
def create_maintenance(
    body: MaintenanceCreateRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        device = _device_in_scope(db, principal, body.device_id)
        schedule = equipment_service.create_manual_maintenance(
            db,
            principal=principal,
            device=device,
            maintenance_type=MaintenanceType(body.maintenance_type),
            title=body.title,
            description=body.description,
            scheduled_date=body.scheduled_date,
            priority=MaintenancePriority(body.priority),
            estimated_duration_minutes=body.estimated_duration_minutes,
            assigned_to=body.assigned_to,
            ip=get_client_ip(request),
        )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise ValidationFailed(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'create_maintenance', device_id=body.device_id) from exc
    return {'success': True, 'data': equipment_service.serialize_schedule(schedule)}


@router.post('/maintenance/{schedule_id}/status')
def update_maintenance_status(
    schedule_id: int,
    body: MaintenanceStatusRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        schedule = equipment_service.get_maintenance(db, schedule_id=schedule_id)
        if not schedule:
            raise NotFound('Maintenance schedule not found')
        assert_restaurant_scope(principal, schedule.restaurant_id)
        equipment_service.transition_maintenance(
            db,
            principal=principal,
            schedule=schedule,
            status=MaintenanceStatus(body.status),
            notes=body.completion_notes,
            ip=get_client_ip(request),
        )
        db.commit()
    except ValueError as exc:
        db.rollback()
        raise ValidationFailed(str(exc)) from exc
    except SQLAlchemyError as exc:
        raise store_failure(db, exc, 'update_maintenance_status', schedule_id=schedule_id) from exc
    return {'success': True, 'data': equipment_service.serialize_schedule(schedule)}
