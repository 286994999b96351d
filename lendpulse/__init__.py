# -*- coding: utf-8 -*-
"""
LendPulse - Application initialisation
Loan portfolio analytics for multi-tenant lending operations
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

from config import Config, APP_CONFIG, LOGGING_CONFIG

db = SQLAlchemy()


def configure_logging(app: Flask):
    """Console logging always, rotating file logging when LOG_TO_FILE is set"""
    formatter = logging.Formatter(
        LOGGING_CONFIG['format'],
        datefmt=LOGGING_CONFIG['date_format'],
    )

    root = logging.getLogger('lendpulse')
    root.setLevel(LOGGING_CONFIG['level'])

    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    if app.config.get('LOG_TO_FILE'):
        os.makedirs(os.path.dirname(LOGGING_CONFIG['file']), exist_ok=True)
        if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
            file_handler = RotatingFileHandler(
                LOGGING_CONFIG['file'],
                maxBytes=LOGGING_CONFIG['max_bytes'],
                backupCount=LOGGING_CONFIG['backup_count'],
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)


def create_app(config_class=Config):
    """Flask application factory"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Extensions
    db.init_app(app)
    configure_logging(app)

    # Register models with db before create_all()
    from lendpulse.models import database  # noqa: F401

    # Blueprints
    from lendpulse.api.routes import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    with app.app_context():
        db.create_all()

    logging.getLogger(__name__).info(
        f"{APP_CONFIG['APP_NAME']} {APP_CONFIG['VERSION']} started"
    )
    return app
