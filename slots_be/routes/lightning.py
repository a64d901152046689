from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy import select

from slots_be.models import db, Deposit
from slots_be.schemas import DepositRequestSchema, PaymentCheckSchema, DepositSchema
from slots_be.utils.decorators import feature_flag_required
from slots_be.utils.security import limiter

lightning_bp = Blueprint('lightning', __name__, url_prefix='/api/lightning')


def _reconciler():
    return current_app.extensions['slots_deposit_reconciler']


@lightning_bp.route('/deposit', methods=['POST'])
@jwt_required()
@limiter.limit("20 per hour")
def request_deposit():
    """Create a Lightning invoice the user can pay to top up their balance."""
    data = DepositRequestSchema().load(request.get_json(silent=True) or {})
    deposit = _reconciler().request_deposit(current_user.id, data['amount'])

    return jsonify({
        'status': True,
        'payment_request': deposit.payment_request,
        'payment_id': deposit.payment_hash,
        'deposit': DepositSchema().dump(deposit)
    }), 201

@lightning_bp.route('/check-payment', methods=['POST'])
@jwt_required()
@limiter.limit("120 per minute")
def check_payment():
    """
    Poll the provider for an invoice. Safe to call repeatedly; a paid invoice
    is credited once.
    """
    data = PaymentCheckSchema().load(request.get_json(silent=True) or {})
    result = _reconciler().check_and_settle(current_user.id, data['payment_id'])

    response = {'status': True, 'paid': result.paid, 'balance': result.balance}
    if result.paid:
        response['credited_amount'] = result.credited_amount
        response['newly_settled'] = result.newly_settled
    return jsonify(response), 200

@lightning_bp.route('/deposits', methods=['GET'])
@jwt_required()
def list_deposits():
    deposits = db.session.scalars(
        select(Deposit).where(Deposit.user_id == current_user.id).order_by(Deposit.id.desc())
    ).all()
    return jsonify({'status': True, 'deposits': DepositSchema(many=True).dump(deposits)}), 200

@lightning_bp.route('/simulate-payment', methods=['POST'])
@jwt_required()
@feature_flag_required('ALLOW_SIMULATED_PAYMENTS')
def simulate_payment():
    data = DepositRequestSchema().load(request.get_json(silent=True) or {})
    balance = _reconciler().simulate_payment(current_user.id, data['amount'])
    return jsonify({'status': True, 'balance': balance}), 200
