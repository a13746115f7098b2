"""
Shared pytest fixtures for cluster-backup tests.

This module provides fixtures for:
- A fake control-plane host layout (/etc/kubernetes equivalent)
- etcd env file and connection fixtures
- Fake collaborators for the executor (snapshot client, publisher)
- Mock S3 bucket using moto
- Temporary file fixtures
"""

from unittest.mock import MagicMock

import pytest
import boto3
from moto import mock_aws

from clusterbackup.backup.naming import ArtifactNamer
from clusterbackup.backup.sources import EtcdConnection
from clusterbackup.config import BackupConfig


STATIC_PODS = ('kube-apiserver', 'kube-controller-manager', 'kube-scheduler', 'etcd')

POD_MANIFEST = """\
apiVersion: v1
kind: Pod
metadata:
  name: {pod}
spec:
  volumes:
  - name: resource-dir
    hostPath:
      path: {resource_dir}
  - name: cert-dir
    hostPath:
      path: /etc/kubernetes/static-pod-certs
"""


@pytest.fixture
def host_config_dir(tmp_path):
    """
    Create a control-plane host layout.

    Creates:
    - manifests/<pod>-pod.yaml for every static pod
    - static-pod-resources/<pod>-pod-3/{configmaps,secrets}/... per pod
    - static-pod-resources/etcd-certs/secrets/etcd-all-peer/master-1.{crt,key}
    """
    root = tmp_path / 'kubernetes'
    manifests = root / 'manifests'
    manifests.mkdir(parents=True)
    resources = root / 'static-pod-resources'

    for pod in STATIC_PODS:
        resource_dir = resources / f'{pod}-pod-3'
        (resource_dir / 'configmaps' / 'config').mkdir(parents=True)
        (resource_dir / 'configmaps' / 'config' / 'config.yaml').write_text(f'{pod}: config\n')
        (resource_dir / 'secrets').mkdir()
        (resource_dir / 'secrets' / 'tls.crt').write_text(f'{pod} certificate\n')
        (manifests / f'{pod}-pod.yaml').write_text(
            POD_MANIFEST.format(pod=pod, resource_dir=resource_dir)
        )

    certs = resources / 'etcd-certs' / 'secrets' / 'etcd-all-peer'
    certs.mkdir(parents=True)
    (certs / 'master-1.crt').write_text('cert')
    (certs / 'master-1.key').write_text('key')
    (resources / 'etcd-certs' / 'ca.crt').write_text('ca')

    return root


@pytest.fixture
def etcd_env_file(host_config_dir):
    """Write an etcd env file in the format rendered on control-plane nodes."""
    certs = host_config_dir / 'static-pod-resources' / 'etcd-certs'
    env_file = host_config_dir / 'etcd.env'
    env_file.write_text(
        'export ETCDCTL_API="3"\n'
        f'export ETCDCTL_CACERT="{certs / "ca.crt"}"\n'
        f'export ETCDCTL_CERT="{certs / "secrets" / "etcd-all-peer" / "master-1.crt"}"\n'
        f'export ETCDCTL_KEY="{certs / "secrets" / "etcd-all-peer" / "master-1.key"}"\n'
        'export ETCDCTL_ENDPOINTS="https://10.0.0.1:2379,https://10.0.0.2:2379"\n'
        'export NODE_master_0_ETCD_URL_HOST="10.0.0.1"\n'
        'export NODE_master_1_ETCD_URL_HOST="10.0.0.2"\n'
    )
    return env_file


@pytest.fixture
def etcd_connection(host_config_dir):
    """Validated connection parameters pointing at the fixture certificates."""
    certs = host_config_dir / 'static-pod-resources' / 'etcd-certs'
    return EtcdConnection(
        endpoints=['https://10.0.0.1:2379', 'https://10.0.0.2:2379'],
        selected_endpoint='https://10.0.0.2:2379',
        ca_cert=str(certs / 'ca.crt'),
        cert=str(certs / 'secrets' / 'etcd-all-peer' / 'master-1.crt'),
        key=str(certs / 'secrets' / 'etcd-all-peer' / 'master-1.key'),
    )


@pytest.fixture
def backup_config(host_config_dir, etcd_env_file, tmp_path):
    """Configuration pointing every path at the fake host layout."""
    return BackupConfig(
        bucket_name='test-bucket',
        region='us-east-1',
        access_key='test_access_key',
        secret_key='test_secret_key',
        host_config_dir=str(host_config_dir),
        manifests_dir=str(host_config_dir / 'manifests'),
        etcd_env_file=str(etcd_env_file),
        etcd_backup_timeout=5.0,
        temp_dir=str(tmp_path / 'work'),
    )


@pytest.fixture
def work_dir(tmp_path):
    work = tmp_path / 'openshift-cluster-backupab12cd'
    work.mkdir()
    return work


@pytest.fixture
def namer(work_dir):
    return ArtifactNamer(str(work_dir), '2024-01-02T03-04-05', 'openshift-cluster-backup')


@pytest.fixture
def fake_snapshot_client():
    """
    Snapshot client that writes a small opaque file at the destination.
    """
    client = MagicMock()

    def save(connection, destination, timeout):
        with open(destination, 'wb') as f:
            f.write(b'\x00etcd-snapshot\x01' * 64)

    client.save.side_effect = save
    return client


@pytest.fixture
def fake_publisher():
    publisher = MagicMock()
    publisher.upload.side_effect = lambda path: f'backups/{path.rsplit("/", 1)[-1]}'
    return publisher


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates an encrypted test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        s3.meta.client.put_bucket_encryption(
            Bucket='test-bucket',
            ServerSideEncryptionConfiguration={
                'Rules': [{
                    'ApplyServerSideEncryptionByDefault': {'SSEAlgorithm': 'AES256'}
                }]
            }
        )
        yield s3


@pytest.fixture
def temp_files(tmp_path):
    """
    Create temporary test files and directories.

    Creates:
    - data/a/file1
    - data/b/x.txt
    - data/b/nested/deep/y.txt
    """
    data = tmp_path / 'data'
    (data / 'a').mkdir(parents=True)
    (data / 'a' / 'file1').write_text('file one')
    (data / 'b' / 'nested' / 'deep').mkdir(parents=True)
    (data / 'b' / 'x.txt').write_text('x content')
    (data / 'b' / 'nested' / 'deep' / 'y.txt').write_bytes(b'\x00\x01binary\xff')
    return data
