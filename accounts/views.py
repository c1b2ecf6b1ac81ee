# accounts/views.py
from django.conf import settings
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import PizzeriaTokenObtainPairSerializer, RegisterSerializer, UserSerializer
from .services import register_user


def _set_auth_cookie(response, access_token):
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        access_token,
        max_age=settings.AUTH_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite="Strict",
    )
    return response


class RegisterView(APIView):
    """
    POST /api/v1/auth/register
    """

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = register_user(**serializer.validated_data)
        token = PizzeriaTokenObtainPairSerializer.get_token(user)
        access = str(token.access_token)
        response = Response(
            {
                "user": UserSerializer(user).data,
                "refresh": str(token),
                "access": access,
            },
            status=status.HTTP_201_CREATED,
        )
        return _set_auth_cookie(response, access)


class LoginView(TokenObtainPairView):
    """
    POST /api/v1/auth/login
    Returns the token pair and sets the ``auth-token`` cookie.
    """

    serializer_class = PizzeriaTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            _set_auth_cookie(response, response.data["access"])
        return response


class LogoutView(APIView):
    """
    POST /api/v1/auth/logout
    Clears the auth cookie. Bearer tokens simply expire.
    """

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        response = Response(status=status.HTTP_204_NO_CONTENT)
        response.delete_cookie(settings.AUTH_COOKIE_NAME, samesite="Strict")
        return response


class MeView(generics.RetrieveUpdateAPIView):
    """
    GET /api/v1/auth/me
    PATCH /api/v1/auth/me
    """

    serializer_class = UserSerializer
    http_method_names = ["get", "patch", "options"]

    def get_object(self):
        return self.request.user
