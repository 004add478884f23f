"""Serializers for activity log entries."""

from rest_framework import serializers

from .models import ActivityLog


class ActivityLogSerializer(serializers.ModelSerializer):
    userId = serializers.ReadOnlyField(source='user_id')
    userName = serializers.ReadOnlyField(source='user.username')
    userEmail = serializers.ReadOnlyField(source='user.email')
    targetUser = serializers.ReadOnlyField(source='target_user_id')
    ipAddress = serializers.ReadOnlyField(source='ip_address')
    timestamp = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = ActivityLog
        fields = ['id', 'userId', 'userName', 'userEmail', 'action', 'description', 'targetUser', 'ipAddress', 'timestamp']
