"""
Security Event Logging System
Provides structured audit logging for logins, balance movements and spins
"""

import logging
from datetime import datetime, timezone
from flask import current_app, g, has_request_context, request
import json


def _request_info():
    if not has_request_context():
        return 'N/A', None
    return g.get('request_id', 'N/A'), request.remote_addr


class SecurityLogger:
    """Centralized security event logging"""

    @staticmethod
    def log_authentication_event(event_type: str, user_id: int = None, username: str = None,
                                 success: bool = True, details: dict = None):
        """Log authentication-related events"""
        request_id, ip_address = _request_info()
        event_data = {
            'event_type': 'authentication',
            'sub_type': event_type,
            'user_id': user_id,
            'username': username,
            'success': success,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'ip_address': ip_address,
            'details': details or {}
        }

        level = logging.INFO if success else logging.WARNING
        current_app.logger.log(level, f"AUTH_EVENT: {json.dumps(event_data, ensure_ascii=False)}")

    @staticmethod
    def log_financial_event(event_type: str, user_id: int, amount: int = None,
                            balance_before: int = None, balance_after: int = None,
                            transaction_id: str = None, details: dict = None):
        """Log balance movements (deposit credits, spin debits and wins)"""
        request_id, ip_address = _request_info()
        event_data = {
            'event_type': 'financial',
            'sub_type': event_type,
            'user_id': user_id,
            'amount_sats': amount,
            'balance_before_sats': balance_before,
            'balance_after_sats': balance_after,
            'transaction_id': transaction_id,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'ip_address': ip_address,
            'details': details or {}
        }

        current_app.logger.info(f"FINANCIAL_EVENT: {json.dumps(event_data, ensure_ascii=False)}")

    @staticmethod
    def log_game_event(event_type: str, user_id: int, bet_amount: int = None,
                       win_amount: int = None, details: dict = None):
        """Log game-related events"""
        request_id, _ = _request_info()
        event_data = {
            'event_type': 'game',
            'sub_type': event_type,
            'user_id': user_id,
            'game_type': 'slot',
            'bet_amount_sats': bet_amount,
            'win_amount_sats': win_amount,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'request_id': request_id,
            'details': details or {}
        }

        current_app.logger.info(f"GAME_EVENT: {json.dumps(event_data, ensure_ascii=False)}")
