from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from flask import Flask, request, jsonify, current_app, g, has_app_context
import uuid
from flask_cors import CORS
from flask_socketio import SocketIO
from flask_jwt_extended import JWTManager
from flask_jwt_extended.exceptions import NoAuthorizationError # For JWT specific errors
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError # For database errors
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException # Renamed to avoid conflict
from slots_be.exceptions import AppException
from slots_be.error_codes import ErrorCodes
import logging
from pythonjsonlogger import jsonlogger
from marshmallow import ValidationError
from http import HTTPStatus
import secrets
import click # For CLI commands

# Custom Logging Filter for Request ID
class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = g.get('request_id', 'N/A') if has_app_context() else 'N/A'
        return True

from slots_be.models import db, User
from slots_be.utils.security import limiter, secure_headers
from slots_be.utils.auth import register_jwt_handlers
from slots_be.config import Config
from slots_be.services.ledger import Ledger
from slots_be.services.deposit_reconciler import DepositReconciler
from slots_be.services.lightning_client import build_lightning_client
from slots_be.services.websocket_manager import WebSocketManager

from slots_be.routes.auth import auth_bp
from slots_be.routes.slots import slots_bp
from slots_be.routes.lightning import lightning_bp


def create_app(config_class=Config, lightning_client=None):
    """
    Application factory.

    Args:
        config_class: Configuration object loaded into app.config.
        lightning_client: Payment provider client. Built from the configuration
            when omitted; tests pass a fake.

    Returns:
        tuple: (app, socketio)
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    # --- CORS Setup ---
    allowed_origins = []

    # Development origins
    if app.debug:
        allowed_origins.extend([
            "http://localhost:8080",
            "http://127.0.0.1:8080",
            "http://localhost:5173",
            "http://127.0.0.1:5173"
        ])

    # Production origins from validated configuration
    if getattr(config_class, 'CORS_ORIGINS_LIST', None):
        allowed_origins.extend(config_class.CORS_ORIGINS_LIST)

    if allowed_origins:
        CORS(app,
             origins=allowed_origins,
             supports_credentials=True,
             methods=['GET', 'POST', 'OPTIONS'],
             allow_headers=['Content-Type', 'Authorization', 'X-CSRF-Token'],
             expose_headers=['X-RateLimit-Limit', 'X-RateLimit-Remaining'],
             max_age=86400)
        app.logger.info(f"CORS configured for origins: {allowed_origins}")
    else:
        app.logger.warning("No CORS origins configured - API will reject cross-origin requests")

    # --- Logging Configuration ---
    if not app.debug:
        logger = app.logger
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(request_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    else:
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)

    # --- Request ID and Security Middleware ---
    @app.before_request
    def security_middleware():
        g.request_id = str(uuid.uuid4())

    @app.after_request
    def security_headers_middleware(response):
        return secure_headers(response)

    log_production_warnings(app)

    # --- Rate Limiter Setup ---
    if app.config.get("TESTING"):
        app.config['RATELIMIT_ENABLED'] = False
        app.config['RATELIMIT_DEFAULT_LIMITS_ENABLED'] = False
    else:
        app.config.setdefault('RATELIMIT_ENABLED', True)
        app.config.setdefault('RATELIMIT_DEFAULT', "1000 per hour")
    limiter.init_app(app)

    # --- Database Setup ---
    db.init_app(app)

    # --- Balance ledger and Lightning deposits ---
    if lightning_client is None:
        lightning_client = build_lightning_client(app.config)
    ledger = Ledger(db)
    app.extensions['slots_lightning_client'] = lightning_client
    app.extensions['slots_ledger'] = ledger
    app.extensions['slots_deposit_reconciler'] = DepositReconciler(
        lightning_client, ledger, max_deposit_sats=app.config.get('MAX_DEPOSIT_SATS', 1_000_000)
    )
    app.logger.info(f"Lightning backend: {getattr(lightning_client, 'name', type(lightning_client).__name__)}")

    # --- WebSocket Setup ---
    socketio = SocketIO(app,
                        cors_allowed_origins=allowed_origins,
                        async_mode='threading',
                        logger=app.logger,
                        engineio_logger=app.logger)
    app.extensions['slots_websocket_manager'] = WebSocketManager(app, socketio)
    app.socketio = socketio

    # --- JWT Setup ---
    jwt = JWTManager(app)
    register_jwt_handlers(jwt)

    # --- Error Handlers ---
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - Validation error: {e.messages} - Error Code: {ErrorCodes.VALIDATION_ERROR}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.VALIDATION_ERROR,
            'status_message': 'Input validation failed.',
            'details': {'errors': e.messages},
            'action_button': None
        }), HTTPStatus.UNPROCESSABLE_ENTITY

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        request_id = g.get('request_id', 'N/A')
        current_app.logger.error(
            f"Request ID: {request_id} - Database error. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.INTERNAL_SERVER_ERROR,
            'status_message': 'A database error occurred. Please try again later.',
            'details': {},
            'action_button': None
        }), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(NoAuthorizationError)
    def handle_no_auth_error(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - JWT NoAuthorizationError: {str(e)} - Error Code: {ErrorCodes.UNAUTHENTICATED}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.UNAUTHENTICATED,
            'status_message': 'Missing or invalid authorization token.',
            'details': {'original_error': str(e)},
            'action_button': None
        }), HTTPStatus.UNAUTHORIZED

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        request_id = g.get('request_id', 'N/A')
        error_code = ErrorCodes.GENERIC_ERROR
        if e.code == 404:
            error_code = ErrorCodes.NOT_FOUND
        elif e.code == 405:
            error_code = ErrorCodes.METHOD_NOT_ALLOWED
        elif e.code == 401:
            error_code = ErrorCodes.UNAUTHENTICATED
        elif e.code == 403:
            error_code = ErrorCodes.FORBIDDEN
        elif e.code == 429:
            error_code = ErrorCodes.RATE_LIMITED
        elif e.code >= 500:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR

        current_app.logger.warning(
            f"Request ID: {request_id} - Werkzeug HTTPException: {e.code} - {e.name}: {e.description} - Error Code: {error_code}"
        )
        response_data = {
            'request_id': request_id,
            'status': False,
            'error_code': error_code,
            'status_message': e.name,
            'details': {'description': e.description},
            'action_button': None
        }
        response = e.get_response()
        response.data = jsonify(response_data).data
        response.content_type = "application/json"
        return response

    # --- Global Error Handler (catch-all for general exceptions) ---
    @app.errorhandler(Exception)
    def handle_global_exception(e):
        request_id = g.get('request_id', 'N/A')

        if isinstance(e, AppException):
            current_app.logger.error(
                f"Request ID: {request_id} - AppException: {e.error_code} - {e.status_message} - Details: {e.details}",
                exc_info=True if e.status_code >= 500 else False # Stack trace for server errors only
            )
            return jsonify({
                'request_id': request_id,
                'status': False,
                'error_code': e.error_code,
                'status_message': e.status_message,
                'details': e.details,
                'action_button': e.action_button
            }), e.status_code

        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)

        current_app.logger.critical(
            f"Request ID: {request_id} - Unhandled Critical Exception. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.INTERNAL_SERVER_ERROR,
            'status_message': 'An unexpected internal server error occurred. Please try again later.',
            'details': {},
            'action_button': None
        }), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(404) # Catches werkzeug.exceptions.NotFound
    def handle_flask_not_found(e):
        request_id = g.get('request_id', 'N/A')
        current_app.logger.warning(
            f"Request ID: {request_id} - HTTP 404 Not Found: {request.url} - Error Code: {ErrorCodes.NOT_FOUND}"
        )
        return jsonify({
            'request_id': request_id,
            'status': False,
            'error_code': ErrorCodes.NOT_FOUND,
            'status_message': 'The requested resource was not found.',
            'details': {'path': request.path},
            'action_button': None
        }), HTTPStatus.NOT_FOUND

    # Register Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(lightning_bp)

    # --- CLI commands ---
    @app.cli.command("init-db")
    def init_db_command():
        """Creates all database tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("credit-user")
    @click.argument('username')
    @click.argument('amount', type=int)
    def credit_user_command(username, amount):
        """Credits AMOUNT sats to USERNAME through the ledger."""
        user = db.session.scalar(select(User).where(User.username == username))
        if user is None:
            raise click.ClickException(f"User '{username}' not found.")
        reference = f"admin-{secrets.token_hex(16)}"
        try:
            balance, _ = ledger.credit_deposit(user.id, amount, reference, transaction_type='admin_credit',
                                               details={'source': 'cli'})
        except AppException as e:
            raise click.ClickException(e.status_message)
        click.echo(f"Credited {amount} sats to '{username}'. New balance: {balance} sats.")

    return app, socketio

def log_production_warnings(app):
    if app.debug or app.config.get('TESTING'):
        return

    if app.config.get('ALLOW_SIMULATED_PAYMENTS'):
        app.logger.critical(
            "CRITICAL SECURITY WARNING: ALLOW_SIMULATED_PAYMENTS is enabled. "
            "Anyone can credit their own balance without paying."
        )

    if app.config.get('RATELIMIT_STORAGE_URI') == 'memory://':
        app.logger.warning(
            "PERFORMANCE/SCALABILITY WARNING: RATELIMIT_STORAGE_URI is set to 'memory://' in a production environment. "
            "This is not suitable for multi-process or multi-instance deployments. "
            "Consider using a persistent store like Redis (e.g., 'redis://localhost:6379/0')."
        )
