"""Environment-driven configuration.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory.
"""

import os
import secrets
from typing import Any, Dict, Optional

from dotenv import load_dotenv


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> set:
    raw = os.environ.get(name) or default
    return {item.strip().lower().lstrip(".") for item in raw.split(",") if item.strip()}


def load_config() -> Dict[str, Any]:
    load_dotenv()
    backend = os.environ.get("RECORD_BACKEND")
    if not backend:
        # USE_GITHUB=true is the older switch for the remote backend
        backend = "github" if _env_bool("USE_GITHUB") else "local"
    return {
        "SECRET_KEY": os.environ.get("SECRET_KEY") or secrets.token_hex(16),
        "DATA_FILE": os.environ.get("DATA_FILE") or "results.json",
        "RECORD_BACKEND": backend.lower(),
        "GITHUB_TOKEN": os.environ.get("GITHUB_TOKEN"),
        "GITHUB_REPO": os.environ.get("GITHUB_REPO") or "",
        "GITHUB_FILE_PATH": os.environ.get("GITHUB_FILE_PATH") or "results.json",
        "GITHUB_BRANCH": os.environ.get("GITHUB_BRANCH") or "main",
        "GITHUB_TIMEOUT": _env_int("GITHUB_TIMEOUT", 10),
        "RANGE_FILE": os.environ.get("RANGE_FILE") or "chest_numbers.xlsx",
        "CHEST_RANGES": None,
        "UPLOAD_FOLDER": os.environ.get("UPLOAD_FOLDER") or os.path.join(os.getcwd(), "uploads"),
        "MAX_CONTENT_LENGTH": _env_int("MAX_CONTENT_LENGTH", 16 * 1024 * 1024),
        "ALLOWED_PHOTO_EXTENSIONS": _env_list("ALLOWED_PHOTO_EXTENSIONS", "png,jpg,jpeg,gif,webp"),
        "PHOTO_REQUIRED": _env_bool("PHOTO_REQUIRED", True),
        "ADMIN_USERNAME": os.environ.get("ADMIN_USERNAME") or "admin",
        "ADMIN_PASSWORD": os.environ.get("ADMIN_PASSWORD"),
        "LOG_LEVEL": (os.environ.get("LOG_LEVEL") or "INFO").upper(),
        "PORT": _env_int("PORT", 3000),
    }
