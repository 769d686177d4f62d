from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "phone",
            "member_id",
            "membership_tier",
            "membership_status",
            "points_balance",
        ]
        read_only_fields = [
            "id",
            "username",
            "member_id",
            "membership_tier",
            "membership_status",
            "points_balance",
        ]
