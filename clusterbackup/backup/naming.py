"""
Artifact naming and the per-run working directory.

All artifacts of one run share a single timestamp token so restore tooling
can pair them and recognise their kind by name:

    snapshot_<ts>.db
    static_kuberesources_<ts>.tgz
    <backup-name>_<ts>.tgz
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .errors import BackupIOError
from .hashing import SIDECAR_SUFFIX


logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%S'
SNAPSHOT_PREFIX = 'snapshot'
STATIC_RESOURCES_PREFIX = 'static_kuberesources'


class ArtifactKind(Enum):
    SNAPSHOT = 'snapshot'
    STATIC_RESOURCES = 'static-resource-archive'
    BUNDLE = 'final-bundle'


@dataclass(frozen=True)
class BackupArtifact:
    """A reserved artifact path and its checksum sidecar."""

    path: str
    kind: ArtifactKind

    @property
    def sidecar_path(self) -> str:
        return self.path + SIDECAR_SUFFIX

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(TIMESTAMP_FORMAT)


class ArtifactNamer:
    """Derives the canonical artifact paths of one run."""

    def __init__(self, work_dir: str, timestamp: str, backup_name: str):
        self.work_dir = work_dir
        self.timestamp = timestamp
        self.backup_name = backup_name

    def _artifact(self, filename: str, kind: ArtifactKind) -> BackupArtifact:
        return BackupArtifact(os.path.join(self.work_dir, filename), kind)

    @property
    def snapshot(self) -> BackupArtifact:
        return self._artifact(f"{SNAPSHOT_PREFIX}_{self.timestamp}.db", ArtifactKind.SNAPSHOT)

    @property
    def static_resources(self) -> BackupArtifact:
        return self._artifact(
            f"{STATIC_RESOURCES_PREFIX}_{self.timestamp}.tgz",
            ArtifactKind.STATIC_RESOURCES
        )

    @property
    def bundle(self) -> BackupArtifact:
        return self._artifact(f"{self.backup_name}_{self.timestamp}.tgz", ArtifactKind.BUNDLE)


class RunContext:
    """
    Working directory and timestamp of a single backup run.

    Used as a context manager: the directory is created on entry and removed
    on exit unless ``keep`` is set. The timestamp is captured once so every
    artifact of the run carries the same token.
    """

    def __init__(
        self,
        backup_name: str,
        keep: bool = False,
        parent_dir: Optional[str] = None,
        now: Optional[datetime] = None
    ):
        self.backup_name = backup_name
        self.keep = keep
        self.parent_dir = parent_dir
        self.timestamp = format_timestamp(now or datetime.now())
        self.work_dir = None
        self.namer = None

    def __enter__(self) -> 'RunContext':
        try:
            if self.parent_dir:
                os.makedirs(self.parent_dir, exist_ok=True)
            self.work_dir = tempfile.mkdtemp(prefix=self.backup_name, dir=self.parent_dir)
        except OSError as e:
            raise BackupIOError(f"Temporary backup dir creation failed: {e}") from e

        self.namer = ArtifactNamer(self.work_dir, self.timestamp, self.backup_name)
        logger.debug(f"Working directory: {self.work_dir}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    def cleanup(self):
        """
        Remove the working directory unless the run asked to keep it.

        An empty directory is removed even when kept, so a run that failed
        before writing any artifact leaves nothing behind.
        """
        if not self.work_dir or not os.path.exists(self.work_dir):
            return
        try:
            if self.keep and os.listdir(self.work_dir):
                logger.info(f"Keeping local backup in {self.work_dir}")
                return
            shutil.rmtree(self.work_dir)
            logger.debug(f"Cleaned up working directory {self.work_dir}")
        except OSError as e:
            logger.warning(f"Failed to cleanup working directory {self.work_dir}: {e}")
