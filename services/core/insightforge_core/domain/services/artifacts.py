"""Artifact storage on the local filesystem.

Documents are written to ``{artifacts_path}/{run_id}/{artifact_type}.md``
and recorded in ``run_artifacts`` with their SHA256 and size. Storing the
same artifact type twice replaces the file and updates the row, so a
redelivered run can re-store everything safely.

Scraped posts are cached under ``{run_id}/_cache/`` so a redelivered run
can skip scraping. Cache problems are logged and never fail a run.

Usage:
    store = ArtifactStore(db=session, storage_path="/var/lib/insightforge/artifacts")
    result = store.store(run_id=42, artifact_type="instructions", content="# ...")
    print(result.storage_path, result.sha256)
"""

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from insightforge_core.domain.models import RunArtifact, utcnow
from insightforge_core.domain.schemas.content import Post

logger = logging.getLogger(__name__)

CACHE_DIR = "_cache"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_POSTS_ADAPTER = TypeAdapter(list[Post])


class ArtifactError(Exception):
    """Base exception for artifact storage."""

    pass


@dataclass
class StoredArtifact:
    artifact_id: int
    artifact_type: str
    storage_path: str
    sha256: str
    size_bytes: int


def safe_name(name: str) -> str:
    """Filesystem-safe file stem."""
    cleaned = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return cleaned or "artifact"


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class ArtifactStore:
    """Writes run documents and records them in the database."""

    def __init__(self, db: Session, storage_path: str):
        self.db = db
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def relative_path(self, run_id: int, artifact_type: str) -> str:
        return f"{run_id}/{safe_name(artifact_type)}.md"

    def store(self, run_id: int, artifact_type: str, content: str) -> StoredArtifact:
        """Write (or overwrite) an artifact and upsert its row.

        Raises:
            ArtifactError: If the file cannot be written.
        """
        data = content.encode("utf-8")
        sha256 = hashlib.sha256(data).hexdigest()
        relative = self.relative_path(run_id, artifact_type)

        try:
            _atomic_write(self.storage_path / relative, data)
        except OSError as e:
            raise ArtifactError(f"Failed to write artifact {relative}: {e}") from e

        artifact = (
            self.db.query(RunArtifact)
            .filter(RunArtifact.run_id == run_id, RunArtifact.artifact_type == artifact_type)
            .first()
        )
        if artifact is None:
            artifact = RunArtifact(run_id=run_id, artifact_type=artifact_type)
            self.db.add(artifact)
        artifact.storage_path = relative
        artifact.content_sha256 = sha256
        artifact.bytes = len(data)
        artifact.updated_at = utcnow()
        self.db.commit()

        logger.info(f"Stored artifact {relative} ({len(data)} bytes)")
        return StoredArtifact(
            artifact_id=artifact.id,
            artifact_type=artifact_type,
            storage_path=relative,
            sha256=sha256,
            size_bytes=len(data),
        )

    def list_for_run(self, run_id: int) -> list[RunArtifact]:
        return (
            self.db.query(RunArtifact)
            .filter(RunArtifact.run_id == run_id)
            .order_by(RunArtifact.id)
            .all()
        )

    def read(self, artifact: RunArtifact) -> str:
        return (self.storage_path / artifact.storage_path).read_text(encoding="utf-8")

    # -------------------------------------------------------------------------
    # Scrape cache
    # -------------------------------------------------------------------------

    def _cache_path(self, run_id: int, username: str) -> Path:
        return self.storage_path / str(run_id) / CACHE_DIR / f"{safe_name(username)}-posts.json"

    def save_scrape_cache(self, run_id: int, username: str, posts: list[Post]) -> None:
        path = self._cache_path(run_id, username)
        try:
            _atomic_write(path, _POSTS_ADAPTER.dump_json(posts))
        except OSError as e:
            logger.warning(f"Failed to cache posts for {username} in run {run_id}: {e}")

    def load_scrape_cache(self, run_id: int, username: str) -> Optional[list[Post]]:
        path = self._cache_path(run_id, username)
        if not path.exists():
            return None
        try:
            return _POSTS_ADAPTER.validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable post cache {path}: {e}")
            return None
