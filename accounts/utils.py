import uuid

import jwt
from datetime import datetime, timedelta, timezone
from django.conf import settings


def create_jwt_token(payload: dict, expires_minutes: int = None) -> str:
    if expires_minutes is None:
        expires_minutes = settings.JWT_ACCESS_TOKEN_LIFETIME_MINUTES
    now = datetime.now(timezone.utc)
    payload = dict(payload, exp=now + timedelta(minutes=expires_minutes), iat=now)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm='HS256')


def issue_session_token(user) -> str:
    """Create a token for ``user`` and make it the only valid session."""
    token = create_jwt_token({
        'user_id': user.id,
        'email': user.email,
        'role': user.role,
        'jti': uuid.uuid4().hex,
    })
    user.current_token_user = token
    user.save(update_fields=['current_token_user'])
    return token
