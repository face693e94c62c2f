from django.contrib import admin
from .models import Conversation, Message


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("id", "ride", "driver", "rider", "created_at", "driver_last_read_at", "rider_last_read_at")
    search_fields = ("ride__id", "driver__username", "rider__username")


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "conversation", "sender", "created_at")
    search_fields = ("conversation__id", "sender__username", "body")
