import os


def _int_list(raw):
    return [int(part) for part in raw.split(',') if part.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///trivia.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = [o for o in os.environ.get('CORS_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',') if o]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Fixed set of rooms created at startup
    ROOM_IDS = _int_list(os.environ.get('ROOM_IDS', '1,2,3,4'))
    # Per-room defaults (seconds); admins may override within bounds on start
    QUESTION_DURATION_SEC = int(os.environ.get('QUESTION_DURATION_SEC', '30'))
    ANSWER_DURATION_SEC = int(os.environ.get('ANSWER_DURATION_SEC', '15'))
    # Delay before the first auto-play question so clients can settle
    AUTOPLAY_START_DELAY_SEC = float(os.environ.get('AUTOPLAY_START_DELAY_SEC', '3'))
    # Reconnection window for disconnected players and how often it is swept
    RECONNECT_GRACE_SEC = int(os.environ.get('RECONNECT_GRACE_SEC', '300'))
    HOLDING_SWEEP_INTERVAL_SEC = int(os.environ.get('HOLDING_SWEEP_INTERVAL_SEC', '600'))
    MAX_NAME_LENGTH = int(os.environ.get('MAX_NAME_LENGTH', '20'))
    # Encoded photo ceiling (data URL characters)
    MAX_PHOTO_CHARS = int(os.environ.get('MAX_PHOTO_CHARS', '70000'))
    LEADERBOARD_SIZE = int(os.environ.get('LEADERBOARD_SIZE', '10'))
    # Background sweep of the holding area; disabled when TESTING
    ENABLE_SWEEPER = os.environ.get('ENABLE_SWEEPER', '1') == '1'
