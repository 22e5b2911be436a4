from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import PipelineError

JPEG_THUMBNAIL = "thumbnail.jpg"
PNG_THUMBNAIL = "thumbnail.png"


def normalize_thumbnail(directory) -> Path:
    """Make sure ``directory/thumbnail.jpg`` exists, converting a PNG upload if needed."""
    directory = Path(directory)
    jpg = directory / JPEG_THUMBNAIL
    if jpg.is_file():
        return jpg

    png = directory / PNG_THUMBNAIL
    try:
        with Image.open(png) as img:
            img.convert("RGB").save(jpg, format="JPEG", quality=90)
    except (OSError, UnidentifiedImageError) as exc:
        jpg.unlink(missing_ok=True)
        raise PipelineError(f"Cannot convert {png.name} in {directory.name} to JPEG: {exc}") from exc
    return jpg


def join_url(base: str, *parts) -> str:
    return "/".join([base.rstrip("/"), *(str(p).strip("/") for p in parts)])
