from flask import Blueprint, request, jsonify, current_app, make_response
from flask_jwt_extended import (
    create_access_token, jwt_required, current_user, set_access_cookies, unset_jwt_cookies
)

from slots_be.schemas import UserSchema
from slots_be.services.accounts import login_by_username
from slots_be.utils.security import limiter

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("20 per minute")
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    user, created = login_by_username(data.get('username'))

    access_token = create_access_token(identity=user)
    user_data = UserSchema().dump(user)

    response = make_response(jsonify({
        'status': True,
        'user': user_data,
        'created': created,
        'access_token': access_token
    }), 200)
    set_access_cookies(response, access_token)

    current_app.logger.info(f"User logged in: {user.username} (ID: {user.id})")
    return response

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_current_user():
    return jsonify({'status': True, 'user': UserSchema().dump(current_user)}), 200

@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    response = make_response(jsonify({'status': True, 'status_message': 'Successfully logged out'}), 200)
    unset_jwt_cookies(response)
    current_app.logger.info(f"User logged out: {current_user.username} (ID: {current_user.id})")
    return response
