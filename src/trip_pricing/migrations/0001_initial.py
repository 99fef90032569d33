from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="TollCacheEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("origin_hash", models.CharField(max_length=16)),
                ("destination_hash", models.CharField(max_length=16)),
                ("toll_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                (
                    "source",
                    models.CharField(
                        choices=[("GOOGLE_API", "Google Routes API"), ("ESTIMATE", "Estimate")],
                        default="GOOGLE_API",
                        max_length=16,
                    ),
                ),
                ("encoded_polyline", models.TextField(blank=True, null=True)),
                ("fetched_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
            ],
            options={
                "ordering": ("-fetched_at",),
                "indexes": [models.Index(fields=["expires_at"], name="toll_cache_expires_at_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("origin_hash", "destination_hash"), name="unique_toll_cache_route"
                    )
                ],
            },
        ),
    ]
