from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    dependencies = [
        ("referrals", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="referral",
            constraint=models.UniqueConstraint(
                fields=("referee",),
                name="referral_referee_uniq",
            ),
        ),
    ]
