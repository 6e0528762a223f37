# Generated manually
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("standing", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="computationjob",
            constraint=models.UniqueConstraint(
                condition=models.Q(status="running"),
                fields=("department", "semester"),
                name="one_running_job_per_department",
            ),
        ),
    ]
