"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Resolve configuration and etcd connection parameters (no side effects)
2. Verify the S3 destination
3. Snapshot etcd, then hash the snapshot
4. Archive the static pod resources, then hash the archive
5. Bundle the working directory, then hash the bundle
6. Upload the bundle

Each stage runs to completion before the next starts. The first failure is
raised as StageFailed naming the stage; nothing already written is rolled
back and no stage is retried.
"""

import logging
import os
from enum import Enum
from typing import Dict, List, Optional

from .compression import create_archive
from .errors import BackupError, BackupIOError, StageFailed
from .hashing import create_sha256_file
from .naming import ArtifactNamer, BackupArtifact, RunContext
from .snapshot import EtcdctlSnapshotClient
from .sources import EtcdConnection, EtcdEnvDiscovery, StaticPodResources
from .storage import S3Publisher


logger = logging.getLogger(__name__)


class Stage(Enum):
    INIT = 'init'
    DESTINATION_VERIFIED = 'destination-verified'
    SNAPSHOT_REQUESTED = 'snapshot-requested'
    SNAPSHOT_HASHED = 'snapshot-hashed'
    RESOURCES_ARCHIVED = 'resources-archived'
    RESOURCES_HASHED = 'resources-hashed'
    BUNDLE_BUILT = 'bundle-built'
    BUNDLE_HASHED = 'bundle-hashed'
    UPLOADED = 'uploaded'


class BackupExecutor:
    """
    Runs the backup stages for one working directory.

    ``state`` is the last stage completed (None before INIT succeeds).
    Collaborators are injected so tests can substitute fakes:

    - discovery: ``discover() -> EtcdConnection``
    - snapshot_client: ``save(connection, destination, timeout)``
    - resources: ``resolve(pods) -> list of directories``
    - publisher: ``verify_destination_ready()`` and ``upload(path) -> key``
    """

    def __init__(
        self,
        config,
        namer: ArtifactNamer,
        discovery,
        snapshot_client,
        resources,
        publisher
    ):
        self.config = config
        self.namer = namer
        self.discovery = discovery
        self.snapshot_client = snapshot_client
        self.resources = resources
        self.publisher = publisher

        self.state: Optional[Stage] = None
        self.connection: Optional[EtcdConnection] = None
        self.artifacts: Dict[str, BackupArtifact] = {}
        self.sidecars: List[str] = []
        self.s3_key: Optional[str] = None

    def execute(self) -> str:
        """
        Run every stage in order.

        Returns:
            S3 key of the uploaded bundle

        Raises:
            StageFailed: On the first failing stage
        """
        self._run(Stage.INIT, self._init)
        self._run(Stage.DESTINATION_VERIFIED, self.publisher.verify_destination_ready)
        self._run(Stage.SNAPSHOT_REQUESTED, self._snapshot)
        self._run(Stage.SNAPSHOT_HASHED, self._hash, self.namer.snapshot)
        self._run(Stage.RESOURCES_ARCHIVED, self._archive_static_resources)
        self._run(Stage.RESOURCES_HASHED, self._hash, self.namer.static_resources)
        self._run(Stage.BUNDLE_BUILT, self._build_bundle)
        self._run(Stage.BUNDLE_HASHED, self._hash, self.namer.bundle)
        self._run(Stage.UPLOADED, self._upload)
        return self.s3_key

    def _run(self, stage: Stage, step, *args):
        logger.debug(f"Stage {stage.value}: running")
        try:
            step(*args)
        except BackupError as e:
            raise StageFailed(stage, e) from e
        except OSError as e:
            cause = BackupIOError(str(e))
            raise StageFailed(stage, cause) from e
        self.state = stage
        logger.debug(f"Stage {stage.value}: done")

    def _init(self):
        self.config.validate()
        connection = self.discovery.discover()
        connection.validate()
        self.connection = connection

    def _snapshot(self):
        self._ensure_cert_path()

        artifact = self.namer.snapshot
        self.artifacts[artifact.kind.value] = artifact
        logger.info(f"Snapshotting etcd to {artifact.path}")
        self.snapshot_client.save(
            self.connection,
            artifact.path,
            self.config.etcd_backup_timeout
        )

    def _ensure_cert_path(self):
        # The env file may point at /etc/kubernetes/static-pod-certs while the
        # certificates only exist under static-pod-resources/etcd-certs.
        if os.path.exists(self.connection.cert):
            return

        link = os.path.join(self.config.host_config_dir, 'static-pod-certs')
        target = os.path.join(self.config.host_config_dir, 'static-pod-resources', 'etcd-certs')
        if os.path.lexists(link):
            return

        logger.info(f"Creating symlink for etcd certificates: {link} -> {target}")
        try:
            os.symlink(target, link)
        except OSError as e:
            raise BackupIOError(f"Creating symlink for etcd cert failed: {e}") from e

    def _hash(self, artifact: BackupArtifact):
        self.sidecars.append(create_sha256_file(artifact.path))

    def _archive_static_resources(self):
        artifact = self.namer.static_resources
        self.artifacts[artifact.kind.value] = artifact

        resource_dirs = self.resources.resolve(self.config.static_pods)
        for directory in resource_dirs:
            logger.info(f"Backing up kube static resources: {directory} -> {artifact.path}")

        create_archive(resource_dirs, artifact.path, prefix=self.config.host_config_dir)

    def _build_bundle(self):
        artifact = self.namer.bundle
        self.artifacts[artifact.kind.value] = artifact

        logger.info(f"Creating backup archive {artifact.path} from {self.namer.work_dir}")
        create_archive([self.namer.work_dir], artifact.path)

    def _upload(self):
        self.s3_key = self.publisher.upload(self.namer.bundle.path)


def run_backup(config, get_hostname=None) -> str:
    """
    Perform one complete backup run.

    Creates the working directory, wires the default collaborators from
    ``config``, runs every stage and removes the working directory afterwards
    unless ``config.keep_local_backup`` is set.

    Returns:
        S3 key of the uploaded bundle

    Raises:
        StageFailed: If any stage fails
        BackupIOError: If the working directory cannot be created
    """
    logger.info(f"backup {config.name} status=running")

    with RunContext(config.name, keep=config.keep_local_backup, parent_dir=config.temp_dir) as run:
        discovery_kwargs = {'get_hostname': get_hostname} if get_hostname else {}
        executor = BackupExecutor(
            config,
            run.namer,
            discovery=EtcdEnvDiscovery(config.etcd_env_file, **discovery_kwargs),
            snapshot_client=EtcdctlSnapshotClient(config.etcdctl_path, config.etcd_dial_timeout),
            resources=StaticPodResources(config.manifests_dir),
            publisher=_LazyPublisher(config)
        )
        try:
            s3_key = executor.execute()
        except StageFailed as e:
            logger.error(f"backup {config.name} status=failed stage={e.stage.value}: {e.cause}")
            raise

    logger.info(f"backup {config.name} status=success key={s3_key}")
    return s3_key


class _LazyPublisher:
    """Defers S3 client creation until the first publisher call."""

    def __init__(self, config):
        self.config = config
        self._publisher = None

    def _get(self) -> S3Publisher:
        if self._publisher is None:
            self._publisher = S3Publisher(
                bucket_name=self.config.bucket_name,
                region=self.config.region,
                access_key=self.config.access_key,
                secret_key=self.config.secret_key,
                key_prefix=self.config.key_prefix
            )
        return self._publisher

    def verify_destination_ready(self):
        self._get().verify_destination_ready()

    def upload(self, local_path: str) -> str:
        return self._get().upload(local_path)
