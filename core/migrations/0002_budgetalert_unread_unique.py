from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='budgetalert',
            constraint=models.UniqueConstraint(
                condition=models.Q(('is_read', False)),
                fields=('budget', 'kind'),
                name='uq_alert_budget_kind_unread',
            ),
        ),
    ]
