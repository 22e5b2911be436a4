import uuid
from django.db import models


class Status(models.TextChoices):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentRecord(models.Model):
    class ContentType(models.TextChoices):
        MOVIE = "movie"
        SHOW = "show"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    bundle_name = models.CharField(max_length=255, unique=True)   # directory name of the bundle
    title = models.CharField(max_length=255)
    category = models.CharField(max_length=128)
    description = models.TextField(blank=True, default="")
    content_type = models.CharField(max_length=8, choices=ContentType.choices)
    rental_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Shows derive status/progress from their episodes; movies own them.
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    hls_url = models.URLField(max_length=1024, blank=True, default="")
    thumbnail_url = models.URLField(max_length=1024, blank=True, default="")
    trailer_url = models.URLField(max_length=1024, blank=True, default="")
    error_details = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.content_type}, {self.status})"


class Season(models.Model):
    record = models.ForeignKey(ContentRecord, related_name="seasons", on_delete=models.CASCADE)
    season_number = models.PositiveIntegerField()
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    rental_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ["season_number"]
        constraints = [
            models.UniqueConstraint(fields=["record", "season_number"], name="unique_season_per_record"),
        ]


class Episode(models.Model):
    season = models.ForeignKey(Season, related_name="episodes", on_delete=models.CASCADE)
    episode_number = models.PositiveIntegerField()
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    duration = models.FloatField(null=True, blank=True)
    rental_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    hls_url = models.URLField(max_length=1024, blank=True, default="")
    thumbnail_url = models.URLField(max_length=1024, blank=True, default="")
    error_details = models.TextField(blank=True, default="")

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["episode_number"]
        constraints = [
            models.UniqueConstraint(fields=["season", "episode_number"], name="unique_episode_per_season"),
        ]
