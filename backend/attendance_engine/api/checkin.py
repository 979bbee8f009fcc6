# File: backend/attendance_engine/api/checkin.py
"""Student check-in API: schedule, slot states, geofence check and submission."""
from typing import Optional

from flask import Blueprint, request
from flask_jwt_extended import get_jwt, get_jwt_identity

from attendance_engine import limiter
from attendance_engine.models.activity import Activity, SlotKey
from attendance_engine.models.attendance import CheckInType, Position
from attendance_engine.models.registration import Registration
from attendance_engine.models.schedule import SlotRef
from attendance_engine.services.attendance_store import AttendanceRecordStore
from attendance_engine.services.check_in_service import (
    CheckInRequest, StaticPositionProvider, UploadedPhotoCamera, UserIdentity
)
from attendance_engine.services.gps_service import GPSService, LocationContext
from attendance_engine.services.registry import get_services
from attendance_engine.utils.decorators import student_required
from attendance_engine.utils.exceptions import NotRegistered
from attendance_engine.utils.helpers import error_response, success_response
from attendance_engine.utils.timezone import parse_instant
from attendance_engine.utils.validators import ValidationError, Validator

checkin_bp = Blueprint('checkin', __name__)

NOT_REGISTERED_MESSAGE = 'Bạn chưa đăng ký tham gia hoạt động này'


class ActivityContext:
    """Activity, resolved schedule, registration and records for one request."""

    def __init__(self, activity_id: str):
        services = get_services()
        self.services = services
        self.activity_id = str(activity_id)
        self.user_id = str(get_jwt_identity())

        raw = services.backend.fetch_activity(self.activity_id)
        self.activity = Activity.from_dict(raw, services.resolver.default_radius_meters)
        self.days = services.resolver.resolve(self.activity)

        participant = services.backend.fetch_participant(self.activity_id, self.user_id, activity=raw)
        self.registration = Registration.from_participant(participant, self.activity.activity_type) \
            if participant else None

        self.store = AttendanceRecordStore(self.activity_id).reconcile(
            services.backend.fetch_status(self.activity_id, self.user_id)
        )

    def require_registration(self) -> Registration:
        if self.registration is None or not self.registration.approved:
            raise NotRegistered(NOT_REGISTERED_MESSAGE)
        return self.registration

    def require_registered_slot(self, ref: Optional[SlotRef]):
        registration = self.require_registration()
        if ref is not None and not registration.allows(ref.day_number, ref.slot_key):
            raise NotRegistered(
                f'Bạn chưa đăng ký {ref.label(self.activity.is_multi_day)}.',
                {'slot': ref.to_dict()}
            )


def _slot_ref(day, slot) -> Optional[SlotRef]:
    """SlotRef from request values; None when no slot is named."""
    if slot in (None, ''):
        return None
    slot_key = SlotKey.parse(slot)
    if slot_key is None:
        raise ValidationError(f"Unknown slot: {slot}")
    try:
        day_number = int(day) if day not in (None, '') else 1
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid day: {day}")
    return SlotRef(day_number, slot_key)


@checkin_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Check-in service is running')


@checkin_bp.route('/<activity_id>/schedule', methods=['GET'])
@student_required
def get_schedule(activity_id):
    """Resolved schedule with check-in locations and the week view."""
    ctx = ActivityContext(activity_id)
    weeks = ctx.services.resolver.group_by_week(ctx.days)

    return success_response(data={
        'activity': {
            'id': ctx.activity_id,
            'name': ctx.activity.name,
            'type': ctx.activity.activity_type.value
        },
        'days': [day.to_dict() for day in ctx.days],
        'weeks': [
            {
                'week_start': week.week_start.isoformat(),
                'week_end': week.week_end.isoformat(),
                'days': [day.day_number for day in week.days]
            }
            for week in weeks
        ]
    })


@checkin_bp.route('/<activity_id>/slots', methods=['GET'])
@student_required
def get_slot_states(activity_id):
    """Availability of every registered slot/direction."""
    services = get_services()
    at = request.args.get('at')
    now = parse_instant(at, services.tz_name) if at else services.now()
    if now is None:
        return error_response("Invalid 'at' timestamp", 400)

    ctx = ActivityContext(activity_id)
    registration = ctx.require_registration()

    states = services.time_windows.slot_states(
        ctx.days, registration, now, ctx.store, ctx.activity.is_multi_day
    )
    available = services.time_windows.find_available_check_in_slot(
        ctx.days, registration, now, ctx.store
    )
    registered = {state.ref for state in states}

    return success_response(data={
        'now': now.isoformat(),
        'states': [state.to_dict() for state in states],
        'available': available.to_dict() if available else None,
        'summary': ctx.store.summary(registered)
    })


@checkin_bp.route('/<activity_id>/verify-location', methods=['POST'])
@limiter.limit("30 per minute")
@student_required
def verify_location(activity_id):
    """Geofence check for the open, targeted or selected slot."""
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    validation = Validator.validate_required_fields(data, ['latitude', 'longitude'])
    if not validation['is_valid']:
        return error_response("Validation failed", 400, {'errors': validation['errors']})

    position = Position.from_dict(data)
    if position is None:
        return error_response("Invalid coordinates", 400)

    try:
        target = _slot_ref(data.get('day'), data.get('slot'))
        selected = _slot_ref(data.get('selected_day'), data.get('selected_slot'))
    except ValidationError as e:
        return error_response(str(e), 400)

    services = get_services()
    ctx = ActivityContext(activity_id)
    ctx.require_registered_slot(target)
    ctx.require_registered_slot(selected)

    available = services.time_windows.find_available_check_in_slot(
        ctx.days, ctx.registration, services.now(), ctx.store
    )
    context = LocationContext(
        available=available.ref if available else None,
        target=target,
        selected=selected
    )
    check = GPSService.validate(position, ctx.activity, ctx.days, context)

    return success_response(
        data={
            'location_check': check.to_dict(),
            'available': available.to_dict() if available else None
        },
        message=check.message or 'Vị trí hợp lệ'
    )


@checkin_bp.route('/<activity_id>/checkin', methods=['POST'])
@limiter.limit("10 per minute")
@student_required
def check_in(activity_id):
    """Submit a photo check-in for the open or targeted slot."""
    services = get_services()
    form = request.form

    photo = request.files.get('photo')
    photo_bytes = photo.read() if photo else None
    captured_at = parse_instant(form.get('captured_at'), services.tz_name)
    position = Position.from_dict({'lat': form.get('latitude'), 'lng': form.get('longitude')})

    try:
        target = _slot_ref(form.get('day'), form.get('slot'))
        check_in_type = CheckInType(form['check_in_type']) if form.get('check_in_type') else None
    except ValidationError as e:
        return error_response(str(e), 400)
    except ValueError:
        return error_response(f"Invalid check_in_type: {form.get('check_in_type')}", 400)

    ctx = ActivityContext(activity_id)
    registration = ctx.require_registration()

    claims = get_jwt()
    service = services.check_in_service(
        StaticPositionProvider(position),
        UploadedPhotoCamera(photo_bytes, captured_at, services.tz_name, clock=services.now)
    )
    outcome = service.check_in(CheckInRequest(
        activity=ctx.activity,
        days=ctx.days,
        registration=registration,
        user=UserIdentity(ctx.user_id, claims.get('name'), claims.get('email')),
        target=target,
        check_in_type=check_in_type,
        late_reason=form.get('late_reason')
    ), ctx.store)

    data = outcome.to_dict()
    data['auto_approved'] = outcome.auto_approved
    return success_response(
        data=data,
        message=outcome.message,
        status_code=201 if outcome.auto_approved else 202
    )
