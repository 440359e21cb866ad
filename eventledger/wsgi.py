"""
wsgi.py — WSGI entry point.

    flask --app eventledger.wsgi run
    gunicorn eventledger.wsgi:app

The config is chosen by FLASK_ENV (development / testing / production).
"""

import os

from eventledger.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
