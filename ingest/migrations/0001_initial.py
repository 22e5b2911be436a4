import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ContentRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("bundle_name", models.CharField(max_length=255, unique=True)),
                ("title", models.CharField(max_length=255)),
                ("category", models.CharField(max_length=128)),
                ("description", models.TextField(blank=True, default="")),
                ("content_type", models.CharField(choices=[("movie", "Movie"), ("show", "Show")], max_length=8)),
                ("rental_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("progress", models.PositiveSmallIntegerField(default=0)),
                ("hls_url", models.URLField(blank=True, default="", max_length=1024)),
                ("thumbnail_url", models.URLField(blank=True, default="", max_length=1024)),
                ("trailer_url", models.URLField(blank=True, default="", max_length=1024)),
                ("error_details", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Season",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("season_number", models.PositiveIntegerField()),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("rental_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                (
                    "record",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="seasons",
                        to="ingest.contentrecord",
                    ),
                ),
            ],
            options={"ordering": ["season_number"]},
        ),
        migrations.CreateModel(
            name="Episode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("episode_number", models.PositiveIntegerField()),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("duration", models.FloatField(blank=True, null=True)),
                ("rental_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("progress", models.PositiveSmallIntegerField(default=0)),
                ("hls_url", models.URLField(blank=True, default="", max_length=1024)),
                ("thumbnail_url", models.URLField(blank=True, default="", max_length=1024)),
                ("error_details", models.TextField(blank=True, default="")),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "season",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="episodes",
                        to="ingest.season",
                    ),
                ),
            ],
            options={"ordering": ["episode_number"]},
        ),
        migrations.AddConstraint(
            model_name="season",
            constraint=models.UniqueConstraint(fields=("record", "season_number"), name="unique_season_per_record"),
        ),
        migrations.AddConstraint(
            model_name="episode",
            constraint=models.UniqueConstraint(fields=("season", "episode_number"), name="unique_episode_per_season"),
        ),
    ]
