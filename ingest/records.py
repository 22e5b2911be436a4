"""
Keeps ContentRecord rows in step with the pipeline.

Every update is addressed by a ``RecordPath``: either ``ROOT`` (the movie, or
the show as a whole) or a (season, episode) coordinate. Episode updates only
touch their own row; the show-level status and progress are then recomputed
from all episodes and are never written directly.
"""
import logging
from decimal import Decimal
from typing import NamedTuple

from django.db import transaction
from django.utils import timezone

from .errors import truncate
from .models import ContentRecord, Episode, Season, Status

logger = logging.getLogger(__name__)

ROOT_ARTIFACTS = {"hls_url", "thumbnail_url", "trailer_url"}
EPISODE_ARTIFACTS = {"hls_url", "thumbnail_url"}


class RecordPath(NamedTuple):
    season: int | None = None
    episode: int | None = None

    @property
    def is_root(self) -> bool:
        return self.season is None and self.episode is None

    def __str__(self):
        return "root" if self.is_root else f"s{self.season}e{self.episode}"


ROOT = RecordPath()


def aggregate_status(statuses) -> str:
    statuses = list(statuses)
    if not statuses:
        return Status.PENDING
    if Status.FAILED in statuses:
        return Status.FAILED
    if all(s == Status.COMPLETED for s in statuses):
        return Status.COMPLETED
    if any(s in (Status.COMPLETED, Status.PROCESSING) for s in statuses):
        return Status.PROCESSING
    return Status.PENDING


def _decimal(value):
    return None if value is None else Decimal(str(value))


def create_record(bundle_name: str, manifest):
    """
    Create the record (and season/episode tree) for a validated bundle.

    A bundle name maps to a single record: reprocessing the same bundle resets
    the existing row instead of adding a second one.
    """
    fields = dict(
        title=manifest.title,
        category=manifest.category,
        description=manifest.description,
        content_type=manifest.content_type,
        rental_price=_decimal(manifest.rental_price),
    )
    with transaction.atomic():
        record, created = ContentRecord.objects.select_for_update().get_or_create(
            bundle_name=bundle_name, defaults=fields
        )
        if not created:
            for name, value in fields.items():
                setattr(record, name, value)
            record.status = Status.PENDING
            record.progress = 0
            record.hls_url = record.thumbnail_url = record.trailer_url = ""
            record.error_details = ""
            record.save()
            record.seasons.all().delete()
            logger.info("Reset existing record %s for bundle %s", record.id, bundle_name)

        for season in manifest.seasons:
            season_row = Season.objects.create(
                record=record,
                season_number=season.season_number,
                title=season.title,
                description=season.description,
                rental_price=_decimal(season.rental_price),
            )
            Episode.objects.bulk_create(
                Episode(
                    season=season_row,
                    episode_number=ep.episode_number,
                    title=ep.title,
                    description=ep.description,
                    duration=ep.duration,
                    rental_price=_decimal(ep.rental_price),
                )
                for ep in season.episodes
            )

    if created:
        logger.info("Created %s record %s for bundle %s", manifest.content_type, record.id, bundle_name)
    return record.id


def _episodes(record_id, path: RecordPath):
    return Episode.objects.filter(
        season__record_id=record_id,
        season__season_number=path.season,
        episode_number=path.episode,
    )


def _require_movie_root(record_id, what: str) -> None:
    content_type = ContentRecord.objects.values_list("content_type", flat=True).get(pk=record_id)
    if content_type == ContentRecord.ContentType.SHOW:
        raise ValueError(f"A show's {what} is derived from its episodes and cannot be set directly")


def _recompute_show(record_id) -> None:
    with transaction.atomic():
        record = ContentRecord.objects.select_for_update().get(pk=record_id)
        rows = list(
            Episode.objects.filter(season__record_id=record_id).values_list("status", "progress")
        )
        status = aggregate_status(s for s, _ in rows)
        progress = sum(p for _, p in rows) // len(rows) if rows else 0
        progress = max(progress, record.progress)
        if status != record.status or progress != record.progress:
            ContentRecord.objects.filter(pk=record_id).update(
                status=status, progress=progress, updated_at=timezone.now()
            )
            if status != record.status:
                logger.info("Show %s is now %s", record.bundle_name, status)


def update_progress(record_id, path: RecordPath, pct) -> None:
    """Raise stored progress to ``pct`` (clamped to 0..100); lower values are ignored."""
    pct = max(0, min(100, int(pct)))
    now = timezone.now()
    if path.is_root:
        _require_movie_root(record_id, "progress")
        ContentRecord.objects.filter(pk=record_id, progress__lt=pct).update(progress=pct, updated_at=now)
        return
    if _episodes(record_id, path).filter(progress__lt=pct).update(progress=pct, updated_at=now):
        _recompute_show(record_id)


def update_status(record_id, path: RecordPath, status, error_detail: str | None = None) -> None:
    status = Status(status)
    fields = {"status": status, "updated_at": timezone.now()}
    if error_detail is not None:
        fields["error_details"] = truncate(error_detail)
    if status == Status.COMPLETED:
        fields["progress"] = 100

    if path.is_root:
        _require_movie_root(record_id, "status")
        updated = ContentRecord.objects.filter(pk=record_id).update(**fields)
        if not updated:
            raise ContentRecord.DoesNotExist(record_id)
    else:
        if not _episodes(record_id, path).update(**fields):
            raise Episode.DoesNotExist(f"{record_id} {path}")
        _recompute_show(record_id)

    if status == Status.FAILED:
        logger.warning("Record %s %s failed: %s", record_id, path, (error_detail or "").split("\n", 1)[0])
    else:
        logger.info("Record %s %s -> %s", record_id, path, status)


def attach_artifacts(record_id, path: RecordPath, urls: dict) -> None:
    allowed = ROOT_ARTIFACTS if path.is_root else EPISODE_ARTIFACTS
    unknown = set(urls) - allowed
    if unknown:
        raise ValueError(f"Unknown artifact fields for {path}: {sorted(unknown)}")

    fields = {name: value or "" for name, value in urls.items()}
    fields["updated_at"] = timezone.now()
    if path.is_root:
        ContentRecord.objects.filter(pk=record_id).update(**fields)
    else:
        _episodes(record_id, path).update(**fields)


def note_error(record_id, detail: str) -> None:
    """Record a diagnostic on the root without changing its status."""
    ContentRecord.objects.filter(pk=record_id).update(
        error_details=truncate(detail), updated_at=timezone.now()
    )
