# authentication.py
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
import jwt
from django.conf import settings
from .models import User


def user_from_token(token):
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationFailed("Invalid token")

    try:
        user = User.objects.get(id=payload["user_id"])
    except (User.DoesNotExist, KeyError):
        raise AuthenticationFailed("User not found")

    if not user.is_active:
        raise AuthenticationFailed("User inactive")

    # only the most recently issued token is valid
    if user.current_token_user != token:
        raise AuthenticationFailed("Invalid session token")

    return user


class JWTAuthentication(BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = request.headers.get('Authorization')

        if not auth or not auth.startswith(f'{self.keyword} '):
            return None

        token = auth.split(' ')[1]
        return (user_from_token(token), token)

    def authenticate_header(self, request):
        return self.keyword
