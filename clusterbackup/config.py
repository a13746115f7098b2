import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from clusterbackup.backup.errors import ConfigError
from clusterbackup.backup.sources import DEFAULT_STATIC_PODS


DEFAULT_NAME = 'openshift-cluster-backup'
HOST_CONFIG_DIR = '/etc/kubernetes'
MANIFESTS_DIR = '/etc/kubernetes/manifests'
DEFAULT_ETCD_ENV_FILE = (
    '/etc/kubernetes/static-pod-resources/etcd-certs/configmaps/etcd-scripts/etcd.env'
)
DEFAULT_ETCD_DIAL_TIMEOUT = '10s'
DEFAULT_ETCD_BACKUP_TIMEOUT = '60s'

# Environment variable names
BUCKET_ENV_KEY = 'BUCKET_NAME'
REGION_ENV_KEY = 'BUCKET_REGION'
KEY_PREFIX_ENV_KEY = 'BUCKET_KEY_PREFIX'
ACCESS_KEY_ID_ENV_KEY = 'AWS_ACCESS_KEY_ID'
SECRET_ACCESS_KEY_ENV_KEY = 'AWS_SECRET_ACCESS_KEY'
TEMP_DIR_ENV_KEY = 'TEMP_DIR'
LOG_FILE_ENV_KEY = 'LOG_FILE'

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h)')
_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600}


def parse_duration(value) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers of seconds and Go-style strings such as
    ``10s``, ``1m30s`` or ``500ms``.

    Raises:
        ConfigError: If the value is not a valid duration
    """
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if not text or position != len(text):
        raise ConfigError(f"Invalid duration: {value!r}")
    return total


@dataclass
class BackupConfig:
    """Everything a backup run needs, passed explicitly to the orchestrator."""

    bucket_name: str = ''
    region: str = ''
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    key_prefix: str = ''

    name: str = DEFAULT_NAME
    host_config_dir: str = HOST_CONFIG_DIR
    manifests_dir: str = MANIFESTS_DIR
    etcd_env_file: str = DEFAULT_ETCD_ENV_FILE
    etcdctl_path: str = 'etcdctl'
    etcd_dial_timeout: float = 10.0
    etcd_backup_timeout: float = 60.0
    static_pods: Tuple[str, ...] = field(default=DEFAULT_STATIC_PODS)

    keep_local_backup: bool = False
    temp_dir: Optional[str] = None
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'BackupConfig':
        """Build a configuration from environment variables plus explicit overrides."""
        environ = os.environ if environ is None else environ

        values = {
            'bucket_name': environ.get(BUCKET_ENV_KEY, ''),
            'region': environ.get(REGION_ENV_KEY, ''),
            'access_key': environ.get(ACCESS_KEY_ID_ENV_KEY) or None,
            'secret_key': environ.get(SECRET_ACCESS_KEY_ENV_KEY) or None,
            'key_prefix': environ.get(KEY_PREFIX_ENV_KEY, ''),
            'temp_dir': environ.get(TEMP_DIR_ENV_KEY) or None,
            'log_file': environ.get(LOG_FILE_ENV_KEY) or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self):
        """
        Raises:
            ConfigError: If a required setting is missing or invalid
        """
        if not self.bucket_name:
            raise ConfigError(f"Missing environment variable: {BUCKET_ENV_KEY}")
        if not self.region:
            raise ConfigError(f"Missing environment variable: {REGION_ENV_KEY}")
        if bool(self.access_key) != bool(self.secret_key):
            raise ConfigError(
                f"{ACCESS_KEY_ID_ENV_KEY} and {SECRET_ACCESS_KEY_ENV_KEY} must be set together"
            )
        if not self.name:
            raise ConfigError("Backup name must not be empty")
        if self.etcd_dial_timeout <= 0:
            raise ConfigError("etcd dial timeout must be positive")
        if self.etcd_backup_timeout <= 0:
            raise ConfigError("etcd backup timeout must be positive")
        if not self.static_pods:
            raise ConfigError("No static pods configured")
