import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('origin_address', models.TextField()),
                ('origin_lat', models.FloatField()),
                ('origin_lng', models.FloatField()),
                ('destination_address', models.TextField()),
                ('destination_lat', models.FloatField()),
                ('destination_lng', models.FloatField()),
                ('distance_miles', models.FloatField()),
                ('departure_time', models.DateTimeField()),
                ('passenger_count', models.PositiveSmallIntegerField(default=1)),
                ('status', models.CharField(choices=[('OPEN', 'Open'), ('ACCEPTED', 'Accepted'), ('IN_ROUTE', 'In route'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='OPEN', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('trip_started_at', models.DateTimeField(blank=True, null=True)),
                ('trip_completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True, null=True)),
                ('total_price_cents', models.IntegerField(blank=True, null=True)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='posted_rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['departure_time'],
                'indexes': [
                    models.Index(fields=['status', 'departure_time'], name='rides_status_5b0f1e_idx'),
                    models.Index(fields=['driver', 'status'], name='rides_driver__a3c2d4_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACCEPTED', 'Accepted'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled'), ('EXPIRED', 'Expired')], default='PENDING', max_length=20)),
                ('payment_type', models.CharField(choices=[('CARD', 'Card'), ('CASH', 'Cash')], default='CARD', max_length=10)),
                ('cash_discount_bps', models.PositiveIntegerField(default=0)),
                ('base_amount_cents', models.IntegerField(blank=True, null=True)),
                ('discount_cents', models.IntegerField(blank=True, null=True)),
                ('final_amount_cents', models.IntegerField(blank=True, null=True)),
                ('currency', models.CharField(default='usd', max_length=3)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bookings', to='rides.ride')),
                ('rider', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bookings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'bookings',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['ride', 'status'], name='bookings_ride_id_7e1f90_idx'),
                    models.Index(fields=['rider', 'status'], name='bookings_rider_i_c94b21_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'ACCEPTED')), fields=('ride',), name='unique_accepted_booking_per_ride'),
                ],
            },
        ),
    ]
