import logging

import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import Config

db = SQLAlchemy()


def create_app(config_class=Config, **overrides):
    """
    Application factory.

    Args:
        config_class: pydantic Settings class, instantiated here so that
            environment variables and .env are read at app creation time
        overrides: extra config values applied last (used by tests)
    """
    app = Flask(__name__)
    app.config.from_object(config_class())
    app.config.update(overrides)

    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)

    from poslicense.utils.audit_log import init_audit_log
    init_audit_log(app)

    from poslicense import models  # noqa: F401 - register tables
    from poslicense.services.activation import ActivationService
    from poslicense.services.issuing import LicenseIssuer
    from poslicense.services.monitoring import MonitoringService
    from poslicense.services.repository import LicenseRepository
    from poslicense.services.verification import VerificationPipeline

    repository = LicenseRepository(db.session)
    app.extensions['poslicense'] = {
        'repository': repository,
        'activation': ActivationService(repository, app.config['KEY_GENERATION_MAX_ATTEMPTS']),
        'verification': VerificationPipeline(repository),
        'monitoring': MonitoringService(repository),
        'issuer': LicenseIssuer(repository, app.config['KEY_GENERATION_MAX_ATTEMPTS'],
                                app.config['BULK_GENERATE_MAX']),
    }

    register_error_handlers(app)

    from poslicense.routes import register_blueprints
    register_blueprints(app)

    register_commands(app)

    if app.config.get('SCHEDULER_ENABLED'):
        from poslicense.utils.scheduler import init_scheduler
        init_scheduler(app)

    return app


def register_error_handlers(app):
    from poslicense.errors import LicenseError, PersistenceError

    @app.errorhandler(LicenseError)
    def handle_license_error(error):
        if isinstance(error, PersistenceError):
            app.logger.exception(f"Persistence error: {error.message}")
        else:
            app.logger.info(f"License error [{error.code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'error': error.description, 'code': error.name.lower().replace(' ', '_')}), \
            error.code


def register_commands(app):

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('Database initialized.')

    @app.cli.command('seed-demo')
    @click.option('--type', 'license_type', default='lifetime', help='License type')
    @click.option('--email', default='demo@example.com', help='Client email')
    def seed_demo(license_type, email):
        """Issue a demo license and print its key."""
        db.create_all()
        issuer = app.extensions['poslicense']['issuer']
        license = issuer.create(license_type, 'Demo Store', email, max_activations=3,
                                notes='Demo license', created_by='cli')
        click.echo(f'Issued {license.type} license {license.license_key} for {license.client_email}')
