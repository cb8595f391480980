"""
Flask application factory.

The HTTP surface lives outside this package; the app exists to own the
database binding and configuration for the pipeline, the sweep script and
the WSGI entry point.
"""

import os

from flask import Flask

from dlc_review.config import Config
from dlc_review.web.db import db


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///instance/"):
        os.makedirs("instance", exist_ok=True)

    db.init_app(app)

    with app.app_context():
        # Register models before create_all
        from dlc_review.web.db import models  # noqa: F401
        db.create_all()

    return app
