from django.db import models
from django.conf import settings


class MembershipType(models.TextChoices):
    RIDER = 'RIDER', 'Rider'
    DRIVER = 'DRIVER', 'Driver'


class MembershipStatus(models.TextChoices):
    ACTIVE = 'ACTIVE', 'Active'
    EXPIRED = 'EXPIRED', 'Expired'
    CANCELLED = 'CANCELLED', 'Cancelled'


class Membership(models.Model):
    """
    One grant of access for an account.

    Only the most recently started row per (user, type) is authoritative;
    older rows are kept as history.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='memberships'
    )

    type = models.CharField(max_length=10, choices=MembershipType.choices)
    plan = models.CharField(max_length=32, null=True, blank=True)  # display only
    status = models.CharField(max_length=10, choices=MembershipStatus.choices, default=MembershipStatus.ACTIVE)

    start_date = models.DateTimeField()
    # Nullable at the column level; a null expiry fails closed in the gate.
    expiry_date = models.DateTimeField(null=True, blank=True)

    amount_paid_cents = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'memberships'
        ordering = ['-start_date']
        indexes = [
            models.Index(fields=['user', 'type', '-start_date'], name='membership_user_id_4d8e2a_idx'),
        ]

    def __str__(self):
        return f"{self.user} - {self.type} until {self.expiry_date}"

    @property
    def is_paid(self):
        return (self.amount_paid_cents or 0) > 0
