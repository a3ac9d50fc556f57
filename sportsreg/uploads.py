"""Photo upload storage."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Iterable, Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import ValidationError

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[1].lower() if "." in filename else ""


def save_photo(upload: Optional[FileStorage], folder, allowed: Iterable[str]) -> str:
    """Store an uploaded photo and return its reference (``/uploads/<name>``)."""
    if upload is None or not upload.filename:
        raise ValidationError("A photo is required")
    ext = _extension(upload.filename)
    allowed = {a.lower() for a in allowed}
    if ext not in allowed:
        raise ValidationError(
            f"Photo type '.{ext}' is not allowed; use one of {', '.join(sorted(allowed))}"
        )
    base = secure_filename(upload.filename) or f"photo.{ext}"
    stored = f"{uuid.uuid4().hex}_{base}"
    target_dir = Path(folder)
    target_dir.mkdir(parents=True, exist_ok=True)
    upload.save(str(target_dir / stored))
    return URL_PREFIX + stored


def resolve_photo(reference: Optional[str], folder) -> Optional[Path]:
    """Map a stored reference back to a file inside ``folder``."""
    if not reference:
        return None
    name = reference[len(URL_PREFIX):] if reference.startswith(URL_PREFIX) else reference
    root = Path(folder).resolve()
    candidate = (root / name).resolve()
    if candidate.parent != root:
        return None
    return candidate


def delete_photo(reference: Optional[str], folder) -> bool:
    """Remove a stored photo; returns ``True`` when a file was deleted."""
    path = resolve_photo(reference, folder)
    if path is None:
        if reference:
            logger.warning("Ignoring photo reference outside upload folder: %s", reference)
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception("Could not delete photo %s", path)
        return False
    logger.info("Deleted photo %s", path.name)
    return True


__all__ = ["delete_photo", "resolve_photo", "save_photo"]
