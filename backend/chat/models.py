from django.db import models
from django.conf import settings


class Conversation(models.Model):
    """Chat channel between the driver and the rider of one ride."""

    ride = models.ForeignKey(
        'rides.Ride',
        on_delete=models.CASCADE,
        related_name='conversations'
    )
    booking = models.ForeignKey(
        'rides.Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='conversations'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='driver_conversations'
    )
    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='rider_conversations'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    # Read watermarks; null means "nothing read since the conversation started"
    driver_last_read_at = models.DateTimeField(null=True, blank=True)
    rider_last_read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'conversations'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'driver', 'rider'],
                name='unique_conversation_per_ride_party'
            )
        ]

    def __str__(self):
        return f"Conversation #{self.id} - Ride {self.ride_id}"


class Message(models.Model):
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages'
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_messages'
    )
    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'messages'
        ordering = ['created_at']

    def __str__(self):
        return f"Message #{self.id} in conversation {self.conversation_id}"
