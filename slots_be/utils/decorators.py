from functools import wraps
from flask import current_app

from slots_be.exceptions import NotFoundException

def feature_flag_required(flag_name):
    """
    Decorator to enable/disable routes based on a feature flag in Flask app config.
    A disabled feature answers 404 so it looks like it does not exist.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get(flag_name, False):
                raise NotFoundException("This feature is not currently available.")
            return f(*args, **kwargs)
        return decorated_function
    return decorator
