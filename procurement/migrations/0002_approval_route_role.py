from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("procurement", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="approval",
            name="route_role",
            field=models.CharField(blank=True, default="", max_length=50),
        ),
    ]
