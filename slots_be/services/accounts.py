import logging
from datetime import datetime, timezone

from marshmallow import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from slots_be.exceptions import InternalServerErrorException, ValidationException
from slots_be.models import db, User
from slots_be.schemas import LoginSchema
from slots_be.utils.security_logger import SecurityLogger

logger = logging.getLogger(__name__)


def login_by_username(raw_username):
    """
    Returns the user for ``raw_username``, creating it with a zero balance on first login.

    Returns:
        tuple: (User, created)

    Raises:
        ValidationException: If the username is missing or empty after trimming.
    """
    try:
        username = LoginSchema().load({'username': raw_username})['username']
    except ValidationError as err:
        SecurityLogger.log_authentication_event('login', username=str(raw_username)[:50], success=False,
                                                details={'errors': err.messages})
        raise ValidationException("Invalid username.", details={'errors': err.messages})

    created = False
    user = db.session.scalar(select(User).where(User.username == username))
    if user is None:
        try:
            user = User(username=username, balance=0)
            db.session.add(user)
            db.session.commit()
            created = True
            logger.info(f"New user: {username}")
        except IntegrityError:
            # Same name created by a concurrent login
            db.session.rollback()
            user = db.session.scalar(select(User).where(User.username == username))
            if user is None:
                raise InternalServerErrorException("Failed to create or load user.")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()

    SecurityLogger.log_authentication_event('login', user_id=user.id, username=user.username,
                                            details={'created': created})
    return user, created
