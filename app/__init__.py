"""Flask Application Factory."""
import os

import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_cors import CORS

from app.config import config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
cors = CORS()


def create_app(config_name=None):
    """Create and configure the Flask application."""
    if config_name is None:
        config_name = os.environ.get('FLASK_CONFIG', 'default')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Ensure instance folder exists
    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        pass

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    cors.init_app(app, resources={
        r'/functions/*': {
            'origins': app.config['CORS_ORIGINS'],
            'methods': ['POST', 'GET', 'OPTIONS', 'PUT', 'DELETE'],
            'allow_headers': ['authorization', 'x-client-info', 'apikey', 'content-type'],
        }
    })

    # User loader for Flask-Login
    from app.models import Profile

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Profile, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    # Register blueprints
    from app.routes import (
        auth_bp, tickets_bp, profiles_bp, settings_bp, admin_bp, functions_bp
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_bp)
    # Serverless-style notification functions, called cross-origin
    app.register_blueprint(functions_bp)
    csrf.exempt(functions_bp)

    register_error_handlers(app)

    # Initialize Flask-Admin (under /db-admin, requires admin role)
    from app.admin import init_admin
    init_admin(app, db)

    # Register CLI commands
    register_cli_commands(app)

    return app


def register_error_handlers(app):
    """Translate domain errors into JSON responses."""
    from app.errors import HelpdeskError

    @app.errorhandler(HelpdeskError)
    def handle_helpdesk_error(error):
        if error.status_code >= 500:
            app.logger.error(f'{error.__class__.__name__}: {error.message}')
        return jsonify({'success': False, 'error': error.message}), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def handle_too_large(error):
        return jsonify({'success': False, 'error': 'File too large'}), 413

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal Server Error'}), 500


def register_cli_commands(app):
    """Register CLI commands."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo('Database initialized.')

    @app.cli.command('reset-db')
    def reset_db_command():
        """Drop and recreate all tables. Requires DB_RESET=true."""
        if os.environ.get('DB_RESET', '').lower() != 'true':
            click.echo('Refusing to reset the database. Set DB_RESET=true to confirm.')
            return
        db.drop_all()
        db.create_all()
        click.echo('Database reset.')

    @app.cli.command('seed')
    def seed_command():
        """Seed the database with the default bases."""
        from app.models import Base

        bases_data = ['Headquarters', 'North Base', 'South Base', 'East Base', 'West Base']
        for name in bases_data:
            if not Base.query.filter_by(name=name).first():
                db.session.add(Base(name=name))
                click.echo(f'Created base: {name}')

        db.session.commit()
        click.echo('Seeding complete.')

    @app.cli.command('seed-users')
    @click.option('--email', default='admin@helpdesk.local', help='Admin e-mail address')
    @click.option('--password', default=None, help='Admin password (generated if omitted)')
    def seed_users_command(email, password):
        """Create the initial Admin profile."""
        import secrets
        from app.models import Base, Profile, ProfileRole

        if Profile.query.filter_by(email=email).first():
            click.echo(f'Profile already exists: {email}')
            return

        if not password:
            password = secrets.token_urlsafe(12)
            click.echo(f'Generated password: {password}')

        admin = Profile(
            email=email,
            full_name='Administrator',
            role=ProfileRole.ADMIN.value
        )
        admin.set_password(password)
        admin.bases = Base.query.all()
        db.session.add(admin)
        db.session.commit()
        click.echo(f'Created admin: {email}')
