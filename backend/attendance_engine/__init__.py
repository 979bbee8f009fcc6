# File: backend/attendance_engine/__init__.py
"""Attendance Engine - Application Factory."""
import json
import logging
import os

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_name: str = None, services=None) -> Flask:
    """Application factory pattern.

    `services` replaces the HTTP-backed collaborators (used by tests).
    """
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Engine services
    from attendance_engine.services.registry import EXTENSION_KEY, build_services
    app.extensions[EXTENSION_KEY] = services or build_services(app.config)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Attendance Engine',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from attendance_engine.api.checkin import checkin_bp

    app.register_blueprint(checkin_bp, url_prefix='/api/checkin')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from werkzeug.exceptions import HTTPException

    from attendance_engine.utils.exceptions import CheckInError
    from attendance_engine.utils.helpers import error_response, handle_error
    from attendance_engine.utils.validators import ValidationError

    @app.errorhandler(CheckInError)
    def check_in_error(error):
        app.logger.info("Check-in refused (%s): %s", error.error_code, error.message)
        return error_response(error.message, error.status_code, error.to_dict())

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return error_response(str(error), 400)

    @app.errorhandler(400)
    def bad_request(error):
        return handle_error(error, 400)

    @app.errorhandler(401)
    def unauthorized(error):
        return handle_error(error, 401)

    @app.errorhandler(403)
    def forbidden(error):
        return handle_error(error, 403)

    @app.errorhandler(404)
    def not_found(error):
        return handle_error(error, 404)

    @app.errorhandler(429)
    def rate_limited(error):
        return handle_error(error, 429)

    @app.errorhandler(500)
    def internal_error(error):
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(level)

    if not app.debug and not app.testing:
        log_dir = app.config.get('LOG_DIR', 'logs')
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(os.path.join(log_dir, 'app.log'))
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)

        app.logger.info('Attendance Engine startup')


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    from attendance_engine.models.activity import Activity
    from attendance_engine.models.registration import Registration
    from attendance_engine.services.attendance_store import AttendanceRecordStore
    from attendance_engine.services.registry import get_services
    from attendance_engine.utils.timezone import parse_instant

    def load_activity(activity_file):
        services = get_services()
        raw = json.load(activity_file)
        activity = Activity.from_dict(raw, services.resolver.default_radius_meters)
        return activity, services.resolver.resolve(activity)

    @app.cli.command('preview-schedule')
    @click.argument('activity_file', type=click.File('r', encoding='utf-8'))
    def preview_schedule(activity_file):
        """Print the resolved schedule of an activity JSON file."""
        activity, days = load_activity(activity_file)

        click.echo(f"{activity.name} ({activity.activity_type.value}), {len(days)} day(s)")
        for day in days:
            click.echo(f"Ngày {day.day_number} - {day.calendar_date.strftime('%d/%m/%Y')}")
            if not day.slots:
                click.echo('  (no slots)')
            for slot in day.slots:
                if slot.location is None:
                    where = 'no location required'
                else:
                    spec = slot.location.spec
                    where = (f"{spec.latitude:.6f}, {spec.longitude:.6f} "
                             f"r={spec.radius_meters:g}m [{slot.location.source.value}]")
                    if spec.address:
                        where += f" {spec.address}"
                click.echo(f"  {slot.name} {slot.start_time:%H:%M}-{slot.end_time:%H:%M}: {where}")

    @app.cli.command('slot-states')
    @click.argument('activity_file', type=click.File('r', encoding='utf-8'))
    @click.option('--at', 'at', help='ISO timestamp to evaluate (default: now)')
    @click.option('--participant', help='Participant JSON with registeredDaySlots')
    def slot_states(activity_file, at, participant):
        """Print availability per registered slot and direction."""
        services = get_services()
        activity, days = load_activity(activity_file)

        now = parse_instant(at, services.tz_name) if at else services.now()
        if now is None:
            raise click.BadParameter(f"Invalid timestamp: {at}", param_hint='--at')

        if participant:
            try:
                registration = Registration.from_participant(json.loads(participant), activity.activity_type)
            except json.JSONDecodeError as e:
                raise click.BadParameter(str(e), param_hint='--participant')
        else:
            registration = Registration(
                user_id='cli',
                activity_type=activity.activity_type,
                day_slots=frozenset((day.day_number, slot.slot_key) for day in days for slot in day.slots)
            )

        store = AttendanceRecordStore(activity.id)
        states = services.time_windows.slot_states(days, registration, now, store, activity.is_multi_day)
        click.echo(f"At {now:%d/%m/%Y %H:%M}")
        for state in states:
            window = state.window
            click.echo(
                f"  {state.label} [{state.check_in_type.value}] {state.state.value} "
                f"(on time {window.on_time_start:%H:%M}-{window.on_time_end:%H:%M}, "
                f"late until {window.late_end:%H:%M})"
            )

        available = services.time_windows.find_available_check_in_slot(days, registration, now, store)
        if available:
            click.echo(f"Open for check-in: {available.ref.label(activity.is_multi_day)} "
                       f"[{available.check_in_type.value}]")
        else:
            click.echo('No slot open for check-in')
