from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework.exceptions import AuthenticationFailed

from accounts.authentication import user_from_token


@database_sync_to_async
def _resolve_user(token):
    try:
        return user_from_token(token)
    except AuthenticationFailed:
        return AnonymousUser()


class JWTQueryAuthMiddleware(BaseMiddleware):
    """Authenticate websocket connections from a ``?token=`` query parameter."""

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get('query_string', b'').decode())
        token = (params.get('token') or [None])[0]
        if token:
            scope['user'] = await _resolve_user(token)
        return await super().__call__(scope, receive, send)
