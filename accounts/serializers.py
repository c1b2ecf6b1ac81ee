# accounts/serializers.py
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "phone",
            "address",
            "city",
            "state",
            "zip_code",
            "role",
            "rewards",
            "marketing_opt_in",
            "supabase_user_id",
        ]
        read_only_fields = ["id", "username", "role", "rewards", "supabase_user_id"]


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    marketing_opt_in = serializers.BooleanField(required=False, default=False)

    def validate_password(self, value):
        validate_password(value)
        return value


class PizzeriaTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Username/password login. Tokens carry ``userId``, ``username`` and
    ``role`` so clients can render without another round trip.
    """

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["username"] = user.username
        token["role"] = user.role
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data["user"] = UserSerializer(self.user).data
        return data
