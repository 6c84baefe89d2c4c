import os
import logging
import click
from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv

from controllers.auth import auth_bp, init_jwt
from controllers.admin import admin_bp
from controllers.vehicles import vehicle_bp
from controllers.parking_slot import parking_bp
from controllers.slot_requests import slot_request_bp
from db.db import init_db, db
from utils.errors import ApiError
# Schema changes go through Flask-Migrate:
# 1 flask --app manage db migrate -m "your commit message"
# 2 flask --app manage db upgrade
# then `flask --app manage seed` for the administrator and sample slots

load_dotenv()

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'Resource not found', 'code': 'NOT_FOUND'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'code': 'METHOD_NOT_ALLOWED'}), 405

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        logger.exception("Unhandled error")
        return jsonify({'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500


def register_commands(app):
    @app.cli.command('seed')
    @click.option('--no-slots', is_flag=True, help='Only create the administrator account.')
    def seed(no_slots):
        """Create the configured administrator and sample parking slots."""
        from db.initializers import run_all_initializers
        admin, created = run_all_initializers(slots=not no_slots)
        click.echo(f"Administrator: {admin.email}")
        if not no_slots:
            click.echo(f"Slots created: {created}")

    @app.cli.command('create-tables')
    def create_tables():
        """Create tables directly, for local SQLite setups without migrations."""
        db.create_all()
        click.echo("Tables created")


def create_app(test_config=None):
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = Flask(__name__)
    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')
    app.config['JSON_SORT_KEYS'] = False
    app.config['CORS_HEADERS'] = 'Content-Type'

    if test_config:
        app.config.update(test_config)

    # CORS configuration
    CORS(app, origins=os.getenv('CORS_ORIGIN', '*'), supports_credentials=True)

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(vehicle_bp)
    app.register_blueprint(parking_bp)
    app.register_blueprint(slot_request_bp)

    init_jwt(app)
    init_db(app)

    register_error_handlers(app)
    register_commands(app)

    @app.route("/")
    def index():
        return "Vehicle Parking Management API Running!"

    return app


# Create a global app variable for Flask CLI to pick up
app = create_app()

if __name__ == '__main__':
    app.run(host="0.0.0.0", port=int(os.getenv('PORT', 5001)), debug=os.getenv('FLASK_DEBUG') == '1')
