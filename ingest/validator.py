"""
Structure validation for submitted bundles.

A bundle is a directory holding ``metadata.json`` plus the media files the
manifest promises. ``validate`` only reads the filesystem; it never moves,
writes, or talks to the record store.
"""
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import ValidationError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "metadata.json"
VIDEO_NAME = "video.mp4"
TRAILER_NAME = "trailer.mp4"
THUMBNAIL_NAMES = ("thumbnail.jpg", "thumbnail.png")
REQUIRED_FIELDS = ("title", "category", "type", "description")
CONTENT_TYPES = ("movie", "show")
DEFAULT_MIN_VIDEO_BYTES = 1024 * 1024


@dataclass(frozen=True)
class EpisodeSpec:
    season_number: int
    episode_number: int
    title: str
    description: str = ""
    duration: float | None = None
    rental_price: float | None = None

    @property
    def dir_name(self) -> str:
        return episode_dir_name(self.season_number, self.episode_number)


@dataclass(frozen=True)
class SeasonSpec:
    season_number: int
    title: str
    episodes: tuple[EpisodeSpec, ...]
    description: str = ""
    rental_price: float | None = None


@dataclass(frozen=True)
class Manifest:
    title: str
    category: str
    description: str
    content_type: str
    rental_price: float | None = None
    seasons: tuple[SeasonSpec, ...] = ()
    has_trailer: bool = False

    @property
    def is_show(self) -> bool:
        return self.content_type == "show"

    def episodes(self) -> list[EpisodeSpec]:
        return [ep for season in self.seasons for ep in season.episodes]


def episode_dir_name(season_number: int, episode_number: int) -> str:
    return f"s{season_number}e{episode_number}"


def find_thumbnail(directory: Path) -> Path | None:
    for name in THUMBNAIL_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def validate(bundle_path, min_video_bytes: int = DEFAULT_MIN_VIDEO_BYTES) -> Manifest:
    """
    Parse ``metadata.json`` and verify the bundle's files against it.

    Raises ValidationError describing the first violation found.
    """
    bundle = Path(bundle_path)
    if not bundle.is_dir():
        raise ValidationError(f"Bundle directory {bundle} does not exist")

    raw = _read_manifest(bundle)
    content_type = raw["type"]

    if content_type == "movie":
        _check_media_dir(bundle, "movie", min_video_bytes)
        manifest = Manifest(
            title=_text(raw, "title"),
            category=_text(raw, "category"),
            description=_text(raw, "description"),
            content_type=content_type,
            rental_price=_price(raw, "rentalPrice", "manifest"),
            has_trailer=(bundle / TRAILER_NAME).is_file(),
        )
    else:
        thumbnail = find_thumbnail(bundle)
        if thumbnail is None:
            raise ValidationError("Either thumbnail.jpg or thumbnail.png is required for show")
        if thumbnail.stat().st_size == 0:
            raise ValidationError(f"File {thumbnail.name} is empty for show")
        seasons = _parse_seasons(raw.get("seasons"))
        _check_episode_dirs(bundle, seasons, min_video_bytes)
        manifest = Manifest(
            title=_text(raw, "title"),
            category=_text(raw, "category"),
            description=_text(raw, "description"),
            content_type=content_type,
            rental_price=_price(raw, "rentalPrice", "manifest"),
            seasons=seasons,
        )

    logger.info("Bundle %s is structurally valid (%s)", bundle.name, content_type)
    return manifest


def _read_manifest(bundle: Path) -> dict:
    path = bundle / MANIFEST_NAME
    if not path.is_file():
        raise ValidationError(f"{MANIFEST_NAME} is required")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Invalid {MANIFEST_NAME}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValidationError(f"{MANIFEST_NAME} must contain a JSON object")

    missing = [name for name in REQUIRED_FIELDS if not raw.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if raw["type"] not in CONTENT_TYPES:
        raise ValidationError(f"Unsupported content type {raw['type']!r}; expected movie or show")
    return raw


def _check_media_dir(directory: Path, label: str, min_video_bytes: int) -> None:
    """Require a non-trivial video.mp4 and a non-empty thumbnail in ``directory``."""
    video = directory / VIDEO_NAME
    if not video.is_file():
        raise ValidationError(f"Required file {VIDEO_NAME} is missing for {label}")
    thumbnail = find_thumbnail(directory)
    if thumbnail is None:
        raise ValidationError(f"Required file thumbnail.jpg or thumbnail.png is missing for {label}")

    for path in (video, thumbnail):
        if path.stat().st_size == 0:
            raise ValidationError(f"File {path.name} is empty for {label}")
    if video.stat().st_size < min_video_bytes:
        raise ValidationError(f"File {VIDEO_NAME} is too small for {label}, might be truncated")


def _parse_seasons(seasons) -> tuple[SeasonSpec, ...]:
    if not isinstance(seasons, list) or not seasons:
        raise ValidationError("Show metadata must include a non-empty seasons list")

    parsed = []
    seen = set()
    season_numbers = set()
    for season in seasons:
        if not isinstance(season, dict):
            raise ValidationError("Invalid season structure in metadata")
        number = _number(season, "seasonNumber", "season")
        if number in season_numbers:
            raise ValidationError(f"Season {number} is declared twice")
        season_numbers.add(number)
        title = season.get("title")
        episodes = season.get("episodes")
        if not title or not isinstance(episodes, list) or not episodes:
            raise ValidationError(f"Season {number} needs a title and a non-empty episodes list")

        specs = []
        for episode in episodes:
            if not isinstance(episode, dict):
                raise ValidationError(f"Invalid episode structure in season {number}")
            ep_number = _number(episode, "episodeNumber", f"episode of season {number}")
            if not episode.get("title"):
                raise ValidationError(f"Episode {ep_number} of season {number} needs a title")
            key = (number, ep_number)
            if key in seen:
                raise ValidationError(f"Episode {ep_number} of season {number} is declared twice")
            seen.add(key)
            duration = episode.get("duration")
            specs.append(
                EpisodeSpec(
                    season_number=number,
                    episode_number=ep_number,
                    title=str(episode["title"]),
                    description=str(episode.get("description") or ""),
                    duration=float(duration) if isinstance(duration, (int, float)) else None,
                    rental_price=_price(episode, "rentalPrice", f"episode {ep_number} of season {number}"),
                )
            )
        parsed.append(
            SeasonSpec(
                season_number=number,
                title=str(title),
                episodes=tuple(specs),
                description=str(season.get("description") or ""),
                rental_price=_price(season, "rentalPrice", f"season {number}"),
            )
        )
    return tuple(parsed)


def _check_episode_dirs(bundle: Path, seasons: tuple[SeasonSpec, ...], min_video_bytes: int) -> None:
    declared = {ep.dir_name: ep for season in seasons for ep in season.episodes}
    on_disk = {
        entry.name
        for entry in bundle.iterdir()
        if entry.is_dir() and not entry.name.startswith(".")
    }

    for name, ep in declared.items():
        if name not in on_disk:
            raise ValidationError(
                f"Missing directory {name} for episode {ep.episode_number} of season {ep.season_number}"
            )
    undeclared = sorted(on_disk - declared.keys())
    if undeclared:
        raise ValidationError(f"Directory {undeclared[0]} is not declared in {MANIFEST_NAME}")

    for name, ep in declared.items():
        label = f"episode {ep.episode_number} of season {ep.season_number}"
        _check_media_dir(bundle / name, label, min_video_bytes)


def _text(raw: dict, key: str) -> str:
    return str(raw[key]).strip()


def _number(raw: dict, key: str, label: str) -> int:
    value = raw.get(key)
    # bool is an int subclass; "true" is not an episode number
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        if isinstance(value, str) and re.fullmatch(r"\d+", value):
            return int(value)
        raise ValidationError(f"Invalid or missing {key} for {label}")
    return value


def _price(raw: dict, key: str, label: str) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"Invalid {key} for {label}: {value!r}")
    return float(value)
