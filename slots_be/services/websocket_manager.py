"""
WebSocket Manager for real-time play.
Mirrors the HTTP API over Socket.IO: login, deposits, payment polling and spins.
"""

from datetime import datetime, timezone
import logging

from flask import current_app, request
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import emit
from jwt.exceptions import PyJWTError
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from slots_be.exceptions import (
    AppException, AuthenticationException, InternalServerErrorException, ValidationException
)
from slots_be.models import db
from slots_be.schemas import DepositRequestSchema, DepositSchema, PaymentCheckSchema, SpinRequestSchema, UserSchema
from slots_be.services.accounts import login_by_username
from slots_be.utils.decorators import feature_flag_required

logger = logging.getLogger(__name__)


class WebSocketManager:
    def __init__(self, app=None, socketio=None):
        self.socketio = socketio
        self.sessions = {}  # socket_id -> {user_id, connected_at}

        if app and socketio:
            self.init_app(app)

    def init_app(self, app):
        """Initialize WebSocket handlers"""
        self.socketio.on_event('connect', self.handle_connect)
        self.socketio.on_event('disconnect', self.handle_disconnect)
        self.socketio.on_event('login', self.handle_login)
        self.socketio.on_event('requestDeposit', self.handle_request_deposit)
        self.socketio.on_event('checkPayment', self.handle_check_payment)
        self.socketio.on_event('spin', self.handle_spin)
        self.socketio.on_event('simulatePayment', self.handle_simulate_payment)

    def authenticate_user(self, auth_token=None):
        """Resolve a user id from a JWT passed at connect time or the access cookie."""
        token = auth_token or request.cookies.get(current_app.config.get('JWT_ACCESS_COOKIE_NAME', 'access_token_cookie'))
        if not token:
            return None
        if token.startswith('Bearer '):
            token = token[7:]
        try:
            user_id = decode_token(token).get('sub')
            return int(user_id) if user_id else None
        except (PyJWTError, JWTExtendedException, ValueError) as e:
            logger.warning(f"WebSocket token rejected: {str(e)}")
            return None

    def handle_connect(self, auth=None):
        """Accept every connection; a valid token restores the session straight away."""
        auth_token = request.args.get('token') or (auth.get('token') if isinstance(auth, dict) else None)
        user_id = self.authenticate_user(auth_token)
        socket_id = request.sid
        if user_id:
            self._bind(socket_id, user_id)
            logger.info(f"User {user_id} connected via WebSocket (socket: {socket_id})")
        else:
            logger.info(f"Anonymous WebSocket connection (socket: {socket_id})")
        emit('connection_status', {'status': 'connected', 'authenticated': bool(user_id)})

    def handle_disconnect(self, reason=None):
        session = self.sessions.pop(request.sid, None)
        if session:
            logger.info(f"User {session['user_id']} disconnected from WebSocket")

    def _bind(self, socket_id, user_id):
        self.sessions[socket_id] = {'user_id': user_id, 'connected_at': datetime.now(timezone.utc)}

    def _get_authenticated_user(self):
        session = self.sessions.get(request.sid)
        if not session:
            raise AuthenticationException("Login required.")
        return session['user_id']

    def _dispatch(self, error_event, handler, data, scalar_key=None):
        """
        Run ``handler`` and report failures on ``error_event`` in the HTTP error format.

        Clients may send a bare value instead of an object; it is wrapped under ``scalar_key``.
        """
        try:
            if data is None:
                data = {}
            elif scalar_key and not isinstance(data, (dict, list)):
                data = {scalar_key: data}
            if not isinstance(data, dict):
                raise ValidationException("Invalid message format: expected an object.")
            handler(data)
        except ValidationError as e:
            exc = ValidationException("Input validation failed.", details={'errors': e.messages})
            emit(error_event, exc.to_dict())
        except AppException as e:
            log = logger.error if e.status_code >= 500 else logger.info
            log(f"WebSocket {error_event}: {e.error_code} - {e.status_message}")
            emit(error_event, e.to_dict())
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Database error while handling {error_event}", exc_info=True)
            emit(error_event, InternalServerErrorException("A database error occurred.").to_dict())
        except Exception:
            logger.critical(f"Unhandled exception while handling {error_event}", exc_info=True)
            emit(error_event, InternalServerErrorException().to_dict())

    # Event handlers

    def handle_login(self, data=None):
        self._dispatch('loginError', self._login, data, scalar_key='username')

    def _login(self, data):
        user, created = login_by_username(data.get('username'))
        self._bind(request.sid, user.id)
        emit('loginSuccess', {
            'user': UserSchema().dump(user),
            'created': created,
            'access_token': create_access_token(identity=user),
        })

    def handle_request_deposit(self, data=None):
        self._dispatch('depositError', self._request_deposit, data, scalar_key='amount')

    def _request_deposit(self, data):
        user_id = self._get_authenticated_user()
        amount = DepositRequestSchema().load(data)['amount']
        deposit = self._reconciler().request_deposit(user_id, amount)
        emit('depositInvoice', {
            'payment_request': deposit.payment_request,
            'payment_id': deposit.payment_hash,
            'deposit': DepositSchema().dump(deposit),
        })

    def handle_check_payment(self, data=None):
        self._dispatch('paymentError', self._check_payment, data, scalar_key='payment_id')

    def _check_payment(self, data):
        user_id = self._get_authenticated_user()
        payment_id = PaymentCheckSchema().load(data)['payment_id']
        result = self._reconciler().check_and_settle(user_id, payment_id)
        payload = {'payment_id': payment_id, 'paid': result.paid, 'balance': result.balance}
        if result.paid:
            payload['credited_amount'] = result.credited_amount
            payload['newly_settled'] = result.newly_settled
        emit('paymentStatus', payload)
        if result.newly_settled:
            emit('balanceUpdate', {'balance': result.balance})

    def handle_spin(self, data=None):
        self._dispatch('spinError', self._spin, data)

    def _spin(self, data):
        user_id = self._get_authenticated_user()
        validated = SpinRequestSchema().load(data)
        bet_credits = validated.get('bet_credits') or current_app.config['DEFAULT_BET_CREDITS']
        sats_per_credit = validated.get('sats_per_credit') or current_app.config['DEFAULT_SATS_PER_CREDIT']
        settlement = current_app.extensions['slots_ledger'].settle_spin(user_id, bet_credits, sats_per_credit)
        emit('spinResult', settlement.to_dict())
        emit('balanceUpdate', {'balance': settlement.new_balance})

    def handle_simulate_payment(self, data=None):
        self._dispatch('paymentError', self._simulate_payment, data, scalar_key='amount')

    @feature_flag_required('ALLOW_SIMULATED_PAYMENTS')
    def _simulate_payment(self, data):
        user_id = self._get_authenticated_user()
        amount = DepositRequestSchema().load(data)['amount']
        balance = self._reconciler().simulate_payment(user_id, amount)
        emit('paymentStatus', {'paid': True, 'balance': balance, 'simulated': True})
        emit('balanceUpdate', {'balance': balance})

    @staticmethod
    def _reconciler():
        return current_app.extensions['slots_deposit_reconciler']

