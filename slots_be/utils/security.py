from datetime import datetime, timezone
from flask import request, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialised against the app in create_app; routes decorate with limiter.limit(...)
limiter = Limiter(key_func=get_remote_address)


def secure_headers(response):
    """Add security headers to every response"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    if request.is_secure and not current_app.debug:
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


def log_security_event(event_type, user_id=None, details=None):
    """Log security-related events for monitoring"""
    log_data = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'ip_address': request.remote_addr,
        'user_agent': request.headers.get('User-Agent', ''),
        'user_id': user_id,
        'details': details or {}
    }

    current_app.logger.warning(f"SECURITY_EVENT: {log_data}")
