from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="paymentrecord",
            name="charged_amount",
            field=models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
            preserve_default=False,
        ),
        migrations.AddField(
            model_name="paymentrecord",
            name="charged_currency",
            field=models.CharField(default="USD", max_length=3),
            preserve_default=False,
        ),
    ]
