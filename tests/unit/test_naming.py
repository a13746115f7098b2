"""
Unit tests for artifact naming and run contexts (clusterbackup/backup/naming.py).
"""

import os
from datetime import datetime
from unittest.mock import patch

from clusterbackup.backup.naming import (
    ArtifactKind,
    ArtifactNamer,
    RunContext,
    format_timestamp,
)


class TestArtifactNamer:
    """Test canonical artifact paths."""

    def test_artifact_paths(self, tmp_path):
        namer = ArtifactNamer(str(tmp_path), '2024-01-02T03-04-05', 'openshift-cluster-backup')

        assert namer.snapshot.path == str(tmp_path / 'snapshot_2024-01-02T03-04-05.db')
        assert namer.static_resources.path == \
            str(tmp_path / 'static_kuberesources_2024-01-02T03-04-05.tgz')
        assert namer.bundle.path == str(tmp_path / 'openshift-cluster-backup_2024-01-02T03-04-05.tgz')

    def test_artifact_kinds_and_sidecars(self, tmp_path):
        namer = ArtifactNamer(str(tmp_path), 'ts', 'name')

        assert namer.snapshot.kind is ArtifactKind.SNAPSHOT
        assert namer.static_resources.kind is ArtifactKind.STATIC_RESOURCES
        assert namer.bundle.kind is ArtifactKind.BUNDLE
        assert namer.bundle.sidecar_path == namer.bundle.path + '.sha256'
        assert namer.bundle.name == 'name_ts.tgz'

    def test_format_timestamp(self):
        assert format_timestamp(datetime(2024, 1, 2, 3, 4, 5)) == '2024-01-02T03-04-05'


class TestRunContext:
    """Test working directory lifecycle."""

    def test_creates_and_removes_work_dir(self, tmp_path):
        with RunContext('openshift-cluster-backup', parent_dir=str(tmp_path)) as run:
            work_dir = run.work_dir
            assert os.path.isdir(work_dir)
            assert os.path.basename(work_dir).startswith('openshift-cluster-backup')
            assert run.namer.work_dir == work_dir

        assert not os.path.exists(work_dir)

    def test_keep_preserves_work_dir(self, tmp_path):
        with RunContext('backup', keep=True, parent_dir=str(tmp_path)) as run:
            (open(run.namer.snapshot.path, 'wb')).close()

        assert os.path.exists(run.namer.snapshot.path)

    def test_keep_removes_empty_work_dir(self, tmp_path):
        """Test a kept run that wrote nothing leaves no directory behind."""
        with RunContext('backup', keep=True, parent_dir=str(tmp_path)) as run:
            work_dir = run.work_dir

        assert not os.path.exists(work_dir)
        assert os.listdir(tmp_path) == []

    def test_removed_on_error(self, tmp_path):
        work_dir = None
        try:
            with RunContext('backup', parent_dir=str(tmp_path)) as run:
                work_dir = run.work_dir
                raise RuntimeError("stage failed")
        except RuntimeError:
            pass

        assert work_dir is not None
        assert not os.path.exists(work_dir)

    def test_timestamp_captured_once(self, tmp_path):
        """Test all artifacts of a run share one timestamp token."""
        with RunContext('backup', parent_dir=str(tmp_path), now=datetime(2024, 5, 6, 7, 8, 9)) as run:
            assert run.timestamp == '2024-05-06T07-08-09'
            assert '2024-05-06T07-08-09' in run.namer.snapshot.name
            assert '2024-05-06T07-08-09' in run.namer.static_resources.name
            assert '2024-05-06T07-08-09' in run.namer.bundle.name

    def test_unique_work_dirs(self, tmp_path):
        with RunContext('backup', parent_dir=str(tmp_path)) as first:
            with RunContext('backup', parent_dir=str(tmp_path)) as second:
                assert first.work_dir != second.work_dir

    @patch('clusterbackup.backup.naming.shutil.rmtree')
    def test_cleanup_failure_logged_not_raised(self, mock_rmtree, tmp_path, caplog):
        mock_rmtree.side_effect = OSError("busy")

        with RunContext('backup', parent_dir=str(tmp_path)):
            pass

        assert 'Failed to cleanup working directory' in caplog.text
