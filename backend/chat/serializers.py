from rest_framework import serializers

from .models import Message


class MessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Message
        fields = ['id', 'conversation', 'sender', 'body', 'created_at']
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    body = serializers.CharField(allow_blank=True, trim_whitespace=False)


class UnreadCountsSerializer(serializers.Serializer):
    conversationIds = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)
