"""
etcd snapshot client.

Runs ``etcdctl snapshot save`` against the local etcd member. The request is
bounded by a deadline; on expiry the process is killed and whatever it wrote
is discarded, since a partial snapshot is never valid.
"""

import logging
import os
import subprocess

from .errors import StoreUnavailable
from .sources import EtcdConnection


logger = logging.getLogger(__name__)


class EtcdctlSnapshotClient:
    """
    Snapshot client backed by the etcdctl binary.

    Only the selected endpoint is contacted: a snapshot must come from a
    single member.
    """

    def __init__(self, etcdctl_path: str = 'etcdctl', dial_timeout: float = 10.0):
        self.etcdctl_path = etcdctl_path
        self.dial_timeout = dial_timeout

    def build_command(self, connection: EtcdConnection, destination: str) -> list:
        return [
            self.etcdctl_path,
            f"--endpoints={connection.selected_endpoint}",
            f"--cacert={connection.ca_cert}",
            f"--cert={connection.cert}",
            f"--key={connection.key}",
            f"--dial-timeout={self.dial_timeout:g}s",
            'snapshot', 'save', destination,
        ]

    def save(self, connection: EtcdConnection, destination: str, timeout: float):
        """
        Write a snapshot of the selected member to ``destination``.

        Args:
            connection: etcd connection parameters
            destination: Snapshot file to create
            timeout: Deadline for the whole request, in seconds

        Raises:
            StoreUnavailable: If etcdctl fails, is missing, or exceeds the deadline
        """
        cmd = self.build_command(connection, destination)
        env = dict(os.environ, ETCDCTL_API='3')

        logger.info(f"Requesting etcd snapshot from {connection.selected_endpoint}")

        try:
            subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env
            )
        except subprocess.TimeoutExpired as e:
            _discard_partial(destination)
            raise StoreUnavailable(f"etcd snapshot timed out after {timeout:g}s") from e
        except subprocess.CalledProcessError as e:
            _discard_partial(destination)
            stderr = (e.stderr or '').strip()
            raise StoreUnavailable(
                f"etcdctl snapshot save failed (exit {e.returncode}): {stderr}"
            ) from e
        except OSError as e:
            _discard_partial(destination)
            raise StoreUnavailable(f"Failed to run {self.etcdctl_path}: {e}") from e

        if not os.path.isfile(destination):
            raise StoreUnavailable(f"etcdctl reported success but wrote no snapshot: {destination}")


def _discard_partial(destination: str):
    # etcdctl streams into "<destination>.part" before renaming
    for path in (destination, destination + '.part'):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove partial snapshot {path}: {e}")
