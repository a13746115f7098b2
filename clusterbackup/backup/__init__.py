"""
Backup module for cluster-backup.

This module handles the core backup functionality including:
- etcd connection discovery and static pod resource resolution
- etcd snapshots
- Archive creation and SHA-256 sidecars
- Stage orchestration
- Upload to S3
"""

from .errors import (
    BackupError,
    BackupIOError,
    ConfigError,
    PublishError,
    StageFailed,
    StoreUnavailable,
    UnsupportedFileType,
)
from .compression import create_archive
from .hashing import create_sha256_file, verify_sha256_file
from .naming import ArtifactNamer, RunContext
from .executor import BackupExecutor, Stage, run_backup
from .snapshot import EtcdctlSnapshotClient
from .sources import EtcdConnection, EtcdEnvDiscovery, StaticPodResources
from .storage import S3Publisher

__all__ = [
    'BackupError',
    'BackupIOError',
    'ConfigError',
    'PublishError',
    'StageFailed',
    'StoreUnavailable',
    'UnsupportedFileType',
    'create_archive',
    'create_sha256_file',
    'verify_sha256_file',
    'ArtifactNamer',
    'RunContext',
    'BackupExecutor',
    'Stage',
    'run_backup',
    'EtcdctlSnapshotClient',
    'EtcdConnection',
    'EtcdEnvDiscovery',
    'StaticPodResources',
    'S3Publisher',
]
