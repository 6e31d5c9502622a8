from django.contrib.auth import get_user_model
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from common.permissions import capabilities_for, get_user_role

User = get_user_model()


class RoleTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Token pair carrying the role and capabilities the kiosk UI gates screens on.

    ``username`` may also be an email address (matched case-insensitively).
    """

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["username"] = user.get_username()
        token["role"] = get_user_role(user)
        token["capabilities"] = sorted(capabilities_for(user))
        token["is_superuser"] = user.is_superuser
        return token

    def validate(self, attrs):
        login = (attrs.get("username") or "").strip()
        if "@" in login:
            username = User.objects.filter(email__iexact=login).values_list("username", flat=True).first()
            if username:
                attrs["username"] = username
        return super().validate(attrs)
