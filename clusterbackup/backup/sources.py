"""
Discovery of what to back up on a control-plane node.

Supports:
- EtcdEnvDiscovery: etcd connection parameters from the etcd env file
- StaticPodResources: host resource directories of the static pods
"""

import logging
import os
import re
import socket
from dataclasses import dataclass, field
from typing import Callable, List

import yaml

from .errors import ConfigError


logger = logging.getLogger(__name__)

ETCD_ENDPOINTS_KEY = 'ETCDCTL_ENDPOINTS'
ETCD_CACERT_KEY = 'ETCDCTL_CACERT'
ETCD_CERT_KEY = 'ETCDCTL_CERT'
ETCD_KEY_KEY = 'ETCDCTL_KEY'

ETCD_CLIENT_PORT = 2379
RESOURCE_DIR_VOLUME = 'resource-dir'

DEFAULT_STATIC_PODS = (
    'kube-apiserver',
    'kube-controller-manager',
    'kube-scheduler',
    'etcd',
)


@dataclass
class EtcdConnection:
    """Connection parameters for the etcd member to snapshot."""

    endpoints: List[str] = field(default_factory=list)
    selected_endpoint: str = ''
    ca_cert: str = ''
    cert: str = ''
    key: str = ''

    def validate(self):
        """
        Raises:
            ConfigError: If any required field is empty
        """
        if not self.cert:
            raise ConfigError("Certificate not found in etcd env file")
        if not self.key:
            raise ConfigError("Key not found in etcd env file")
        if not self.ca_cert:
            raise ConfigError("CA certificate not found in etcd env file")
        if not self.selected_endpoint:
            raise ConfigError("Current host endpoint not found in etcd env file")
        if not self.endpoints:
            raise ConfigError("Endpoints not found in etcd env file")


class EtcdEnvDiscovery:
    """
    Reads etcd connection parameters from the env file rendered on the node.

    The file holds ``export KEY="value"`` lines. The snapshot is requested
    from the local member only, whose address is published as
    ``NODE_<hostname>..._ETCD_URL_HOST`` with dashes in the hostname
    replaced by underscores.
    """

    def __init__(self, env_file: str, get_hostname: Callable[[], str] = socket.gethostname):
        self.env_file = env_file
        self.get_hostname = get_hostname

    def discover(self) -> EtcdConnection:
        """
        Returns:
            Validated EtcdConnection

        Raises:
            ConfigError: If the file cannot be read or a value is missing
        """
        logger.info(f"Reading etcd environment variables from {self.env_file}")

        try:
            with open(self.env_file, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Unable to open etcd env file {self.env_file}: {e}") from e

        hostname = self.get_hostname().replace('-', '_')
        host_key = re.compile('NODE_' + re.escape(hostname) + '.*_ETCD_URL_HOST')

        connection = EtcdConnection()
        for key, value in _parse_env_lines(lines):
            if key == ETCD_CERT_KEY:
                connection.cert = value
            elif key == ETCD_KEY_KEY:
                connection.key = value
            elif key == ETCD_CACERT_KEY:
                connection.ca_cert = value
            elif key == ETCD_ENDPOINTS_KEY:
                connection.endpoints = [e.strip() for e in value.split(',') if e.strip()]

            if host_key.match(key) and value:
                connection.selected_endpoint = f"https://{value}:{ETCD_CLIENT_PORT}"

        connection.validate()
        return connection


def _parse_env_lines(lines):
    for line in lines:
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('export '):
            line = line[len('export '):]
        key, sep, value = line.partition('=')
        if not sep:
            continue
        yield key.strip(), value.strip().strip('"\'')


class StaticPodResources:
    """
    Maps static pod names to their resource directory on the host.

    Each control-plane static pod manifest mounts its certificates and
    configuration from a hostPath volume named ``resource-dir``.
    """

    def __init__(self, manifests_dir: str):
        self.manifests_dir = manifests_dir

    def resource_dir(self, pod: str) -> str:
        """
        Raises:
            ConfigError: If the manifest is unreadable or has no resource-dir volume
        """
        manifest_path = os.path.join(self.manifests_dir, f"{pod}-pod.yaml")

        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                spec = yaml.safe_load(f) or {}
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Unable to read static pod manifest {manifest_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid static pod manifest {manifest_path}: {e}") from e

        if not isinstance(spec, dict):
            raise ConfigError(f"Invalid static pod manifest {manifest_path}")
        pod_spec = spec.get('spec') or {}
        if not isinstance(pod_spec, dict):
            raise ConfigError(f"Invalid static pod manifest {manifest_path}: malformed spec")
        volumes = pod_spec.get('volumes') or []
        if not isinstance(volumes, list):
            raise ConfigError(f"Invalid static pod manifest {manifest_path}: malformed volumes")

        for volume in volumes:
            if not isinstance(volume, dict):
                raise ConfigError(f"Invalid static pod manifest {manifest_path}: malformed volume")
            if volume.get('name') != RESOURCE_DIR_VOLUME:
                continue
            host_path = volume.get('hostPath') or {}
            if not isinstance(host_path, dict):
                raise ConfigError(f"Invalid static pod manifest {manifest_path}: malformed hostPath")
            if host_path.get('path'):
                return str(host_path['path'])

        raise ConfigError(f"Pod resource directory not found: {pod}")

    def resolve(self, pods=DEFAULT_STATIC_PODS) -> List[str]:
        """Resource directories of ``pods``, in order."""
        return [self.resource_dir(pod) for pod in pods]
