from datetime import timedelta
import logging
import os
from functools import wraps
from flask import Flask, render_template, request, g, jsonify, current_app, redirect, url_for
from werkzeug.exceptions import HTTPException
from appointment_scheduler.config import get_config
from appointment_scheduler.booking.booking_service import BookingService
from appointment_scheduler.booking.booking_utils import parse_datetime, to_iso
from appointment_scheduler.booking.error_utils import BookingError, StorageError, ValidationError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping(get_config())
    if test_config:
        app.config.update(test_config)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    # Keep the appointment fields in their documented order
    app.json.sort_keys = False

    # One service per app so every request sees the same store
    app.extensions['booking_service'] = BookingService.from_config(app.config)
    register_routes(app)
    register_error_handlers(app)
    return app


# Use decorator to put the app's booking service on g for the request so views don't look it up themselves
def with_booking_service(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.booking = current_app.extensions['booking_service']
        return f(*args, **kwargs)
    return decorated_function


def _week_reference(raw):
    if not raw:
        return None
    return parse_datetime(raw)


def _shift_week(week_start, days):
    """ISO start of a neighbouring week, or None when it falls outside the datetime range."""
    try:
        return to_iso(week_start + timedelta(days=days))
    except OverflowError:
        return None


def _calendar_grid(week, tz):
    """
    Re-shape the flat week of slots into rows of times by columns of days for the calendar template.
    """
    slots = [dict(slot, local=parse_datetime(slot['dateTime']).astimezone(tz)) for slot in week['slots']]
    days = []
    for slot in slots:
        if not days or days[-1]['date'] != slot['local'].date():
            days.append({'date': slot['local'].date(), 'slots': []})
        days[-1]['slots'].append(slot)
    rows = [list(row) for row in zip(*(day['slots'] for day in days))]
    return days, rows


def register_routes(app):

    @app.route('/')
    @with_booking_service
    def calendar():
        try:
            week = g.booking.week_slots(_week_reference(request.args.get('week')))
        except ValidationError:
            return redirect(url_for('calendar'))
        days, rows = _calendar_grid(week, g.booking.generator.tz)
        week_start = parse_datetime(week['weekStart'])
        upcoming = [a.to_dict() for a in g.booking.list_upcoming()]
        return render_template('calendar.html', days=days, rows=rows, upcoming=upcoming,
                               previous_week=_shift_week(week_start, -7),
                               next_week=_shift_week(week_start, 7))

    @app.route('/api/health', methods=['GET'])
    @with_booking_service
    def health():
        return jsonify(g.booking.health())

    @app.route('/api/appointments', methods=['GET'])
    @with_booking_service
    def list_appointments():
        return jsonify([a.to_dict() for a in g.booking.list_appointments()])

    @app.route('/api/appointments/upcoming', methods=['GET'])
    @with_booking_service
    def list_upcoming_appointments():
        appointments = g.booking.list_in_range(request.args.get('start'), request.args.get('end'))
        return jsonify([a.to_dict() for a in appointments])

    @app.route('/api/appointments', methods=['POST'])
    @with_booking_service
    def create_appointment():
        # Anything that isn't a JSON object is reported as missing every field
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}
        appointment = g.booking.book(payload)
        return jsonify(appointment.to_dict()), 201

    @app.route('/api/appointments/<appointment_id>', methods=['DELETE'])
    @with_booking_service
    def delete_appointment(appointment_id):
        deleted = g.booking.cancel(appointment_id)
        return jsonify({'success': True, **deleted})

    @app.route('/api/slots', methods=['GET'])
    @with_booking_service
    def week_slots():
        reference = _week_reference(request.args.get('week'))
        return jsonify(g.booking.week_slots(reference))


def register_error_handlers(app):

    # Every booking error reaches the client as structured JSON with its own status code
    @app.errorhandler(BookingError)
    def handle_booking_error(error):
        if isinstance(error, StorageError):
            logger.error(f"Storage failure while handling {request.method} {request.path}: {error.details}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.name}), error.code


app = create_app()

if __name__ == '__main__':
    # production
    if os.environ.get('FLASK_ENV') == 'production':
        app.run(debug=False)
    else:
        app.run(debug=True, port=5003)
