from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user
from sqlalchemy import select

from slots_be.exceptions import ValidationException
from slots_be.models import db, SlotSpin
from slots_be.schemas import SpinRequestSchema, SlotSpinSchema
from slots_be.services.ledger import MAX_BET_SATS
from slots_be.utils.security import limiter, log_security_event
from slots_be.utils.security_logger import SecurityLogger
from slots_be.utils.spin_handler import paytable_description

slots_bp = Blueprint('slots', __name__, url_prefix='/api/slots')

@slots_bp.route('/paytable', methods=['GET'])
def get_paytable():
    return jsonify({'status': True, **paytable_description()}), 200

@slots_bp.route('/spin', methods=['POST'])
@jwt_required()
@limiter.limit("120 per minute")
def spin():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationException("Invalid request format: expected a JSON object.")

    # Marshmallow errors are handled by the global handler
    validated = SpinRequestSchema().load(data)
    bet_credits = validated.get('bet_credits') or current_app.config['DEFAULT_BET_CREDITS']
    sats_per_credit = validated.get('sats_per_credit') or current_app.config['DEFAULT_SATS_PER_CREDIT']

    user = current_user
    # The ledger rejects the bet; only the audit trail is recorded here.
    if bet_credits * sats_per_credit > MAX_BET_SATS:
        log_security_event('OVERFLOW_ATTACK_ATTEMPT', user.id,
                           {'bet_credits': bet_credits, 'sats_per_credit': sats_per_credit})

    SecurityLogger.log_game_event(
        event_type='spin_attempt',
        user_id=user.id,
        bet_amount=bet_credits * sats_per_credit,
        details={'bet_credits': bet_credits, 'sats_per_credit': sats_per_credit}
    )

    ledger = current_app.extensions['slots_ledger']
    settlement = ledger.settle_spin(user.id, bet_credits, sats_per_credit)

    SecurityLogger.log_game_event(
        event_type='spin_resolved',
        user_id=user.id,
        bet_amount=settlement.cost,
        win_amount=settlement.prize,
        details={'nonce': settlement.spin.nonce, 'winning_lines': len(settlement.payout.winning_lines)}
    )
    return jsonify({'status': True, **settlement.to_dict()}), 200

@slots_bp.route('/history', methods=['GET'])
@jwt_required()
def spin_history():
    limit = request.args.get('limit', 20, type=int)
    limit = max(1, min(limit, 100))
    spins = db.session.scalars(
        select(SlotSpin)
        .where(SlotSpin.user_id == current_user.id)
        .order_by(SlotSpin.id.desc())
        .limit(limit)
    ).all()
    return jsonify({'status': True, 'spins': SlotSpinSchema(many=True).dump(spins)}), 200
