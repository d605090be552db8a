import os
import secrets


def get_config():
    """
    Settings for a new app, read from the environment at the time the app is created.
    """
    production = os.environ.get('FLASK_ENV') == 'production'
    return {
        'SECRET_KEY': os.environ.get('SECRET_KEY') or secrets.token_hex(32),  # 256 bit
        # memory, file or postgres. Production keeps appointments across restarts
        'BOOKING_STORAGE': os.environ.get('BOOKING_STORAGE', 'file' if production else 'memory'),
        'BOOKING_DATA_FILE': os.environ.get('BOOKING_DATA_FILE', 'data.json'),
        'DATABASE_URL': os.environ.get('DATABASE_URL'),
        # Two appointments closer than this are a double booking
        'BOOKING_CONFLICT_TOLERANCE_SECONDS': float(os.environ.get('BOOKING_CONFLICT_TOLERANCE_SECONDS', 60)),
        'BOOKING_TIMEZONE': os.environ.get('BOOKING_TIMEZONE', 'UTC'),
        'BOOKING_DAY_START': os.environ.get('BOOKING_DAY_START', '09:00'),
        'BOOKING_DAY_END': os.environ.get('BOOKING_DAY_END', '17:00'),
        'BOOKING_SLOT_MINUTES': int(os.environ.get('BOOKING_SLOT_MINUTES', 30)),
    }
