"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from eventledger.app.extensions import db, ma

The collaborators (attachment storage, email sender) are not singletons. They
are built per app in create_app() and stored in app.extensions under the keys
below, so tests can swap them without patching module globals.
"""

from flask import current_app
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Marshmallow instance, bound to the app so flask-marshmallow's URL/Hyperlink
# helpers are available.
#
# IMPORTANT: schema inheritance rule:
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema. Unit tests in
#   tests/unit/ load schemas without a Flask app.
ma = Marshmallow()


ATTACHMENT_STORAGE_KEY = "attachment_storage"
EMAIL_SENDER_KEY = "email_sender"


def get_attachment_storage():
    """Returns the attachment storage registered on the current app."""
    return current_app.extensions[ATTACHMENT_STORAGE_KEY]


def get_email_sender():
    """Returns the email sender registered on the current app."""
    return current_app.extensions[EMAIL_SENDER_KEY]
