"""Records kept in a file of a GitHub repository (Contents API).

Every request carries a timeout; transport errors and unexpected statuses
surface as :class:`PersistenceError` instead of an empty result.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from .datastore import RecordStore, records_from_json, records_to_json
from .errors import PersistenceError
from .models import Participant

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"


class GitHubStore(RecordStore):
    name = "github"

    def __init__(
        self,
        repo: str,
        path: str = "results.json",
        branch: str = "main",
        token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        if not repo:
            raise ValueError("GITHUB_REPO is required for the github backend")
        self.repo = repo
        self.path = path
        self.branch = branch
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{GITHUB_API_BASE}/repos/{self.repo}/contents/{self.path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _fetch(self) -> Optional[Dict[str, Any]]:
        """Return the contents metadata, or ``None`` if the file does not exist."""
        try:
            response = self.session.get(
                self.url,
                headers=self._headers(),
                params={"ref": self.branch},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("GitHub fetch failed: %s", exc)
            raise PersistenceError(f"GitHub fetch failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error("GitHub fetch returned HTTP %s", response.status_code)
            raise PersistenceError(f"GitHub fetch returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise PersistenceError("GitHub returned a non-JSON response") from exc

    def load(self) -> List[Participant]:
        meta = self._fetch()
        if meta is None:
            logger.info("%s not found on %s@%s; starting empty", self.path, self.repo, self.branch)
            return []
        try:
            text = base64.b64decode(meta.get("content") or "").decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Could not decode {self.path} from GitHub") from exc
        if not text.strip():
            return []
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise PersistenceError(f"{self.path} on GitHub is not valid JSON: {exc}") from exc
        return records_from_json(payload)

    def save(self, records: Sequence[Participant], message: Optional[str] = None) -> None:
        meta = self._fetch()
        body: Dict[str, Any] = {
            "message": message or f"Update {self.path}",
            "content": base64.b64encode(records_to_json(records).encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if meta and meta.get("sha"):
            body["sha"] = meta["sha"]
        try:
            response = self.session.put(
                self.url,
                headers=self._headers(),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("GitHub push failed: %s", exc)
            raise PersistenceError(f"GitHub push failed: {exc}") from exc
        if response.status_code not in (200, 201):
            logger.error("GitHub push returned HTTP %s", response.status_code)
            raise PersistenceError(f"GitHub push returned HTTP {response.status_code}")
        logger.info("Pushed %d records to %s@%s (%s)", len(records), self.repo, self.branch, body["message"])


__all__ = ["GitHubStore"]
