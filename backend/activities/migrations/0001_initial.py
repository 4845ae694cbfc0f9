from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("farms", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Activity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("harvesting", "Harvesting"),
                            ("planting", "Planting"),
                            ("workshop", "Workshop"),
                            ("cultural", "Cultural"),
                            ("educational", "Educational"),
                            ("recreational", "Recreational"),
                        ],
                        default="recreational",
                        max_length=20,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                (
                    "adult_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                ("child_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("senior_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("min_participants", models.PositiveIntegerField(default=1)),
                ("max_participants", models.PositiveIntegerField(default=20)),
                ("blackout_dates", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "farm",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="activities",
                        to="farms.farm",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "activities",
                "ordering": ["farm_id", "name"],
            },
        ),
    ]
