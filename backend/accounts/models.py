from django.db import models
from django.contrib.auth.models import AbstractUser


class Role(models.TextChoices):
    RIDER = 'RIDER', 'Rider'
    DRIVER = 'DRIVER', 'Driver'
    ADMIN = 'ADMIN', 'Admin'


class User(AbstractUser):
    """Extended user model with role selection"""

    # Role & basic info
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.RIDER)
    phone_number = models.CharField(max_length=15, blank=True)
    completed_rides = models.IntegerField(default=0)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
