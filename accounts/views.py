from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import LoginSerializer, UserSerializer
from .utils import issue_session_token

User = get_user_model()


class LoginAPIView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        ser = LoginSerializer(data=request.data)
        if not ser.is_valid():
            return Response(ser.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            user = User.objects.get(email__iexact=ser.validated_data['email'])
        except User.DoesNotExist:
            return Response({'error': 'Email atau kata sandi salah.'},
                            status=status.HTTP_401_UNAUTHORIZED)

        if not user.is_active:
            return Response({'error': 'Akun dinonaktifkan, hubungi admin.'},
                            status=status.HTTP_403_FORBIDDEN)

        if not user.check_password(ser.validated_data['password']):
            return Response({'error': 'Email atau kata sandi salah.'},
                            status=status.HTTP_401_UNAUTHORIZED)

        token = issue_session_token(user)
        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])

        return Response({
            'token': token,
            'user': UserSerializer(user).data,
        }, status=status.HTTP_200_OK)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)
