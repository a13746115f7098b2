"""
SHA-256 sidecar files for backup artifacts.

A sidecar sits next to the artifact as ``<artifact>.sha256`` and holds a
single ``"<hex digest>  <basename>"`` line, so ``sha256sum -c`` can check it.
"""

import hashlib
import os
from typing import Tuple

from .errors import BackupIOError


CHUNK_SIZE = 64 * 1024
SIDECAR_SUFFIX = '.sha256'


def sha256_of_file(path: str) -> str:
    """
    Compute the SHA-256 digest of a file without loading it into memory.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest

    Raises:
        BackupIOError: If the file cannot be opened or read
    """
    digest = hashlib.sha256()
    try:
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                digest.update(chunk)
    except OSError as e:
        raise BackupIOError(f"Failed to hash {path}: {e}") from e
    return digest.hexdigest()


def create_sha256_file(path: str) -> str:
    """
    Hash a file and write its checksum sidecar.

    Re-running over an unchanged file rewrites identical content.

    Args:
        path: Artifact to hash

    Returns:
        Path of the written sidecar

    Raises:
        BackupIOError: If the artifact cannot be read or the sidecar written
    """
    hex_digest = sha256_of_file(path)
    sidecar_path = path + SIDECAR_SUFFIX
    content = f"{hex_digest}  {os.path.basename(path)}"

    try:
        fd = os.open(sidecar_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
    except OSError as e:
        raise BackupIOError(f"Failed to write checksum file {sidecar_path}: {e}") from e

    return sidecar_path


def read_sha256_file(sidecar_path: str) -> Tuple[str, str]:
    """
    Parse a checksum sidecar.

    Returns:
        Tuple of (hex digest, basename)

    Raises:
        BackupIOError: If the sidecar cannot be read or is malformed
    """
    try:
        with open(sidecar_path, 'r', encoding='utf-8') as f:
            line = f.read().rstrip('\r\n')
    except OSError as e:
        raise BackupIOError(f"Failed to read checksum file {sidecar_path}: {e}") from e

    hex_digest, sep, name = line.partition('  ')
    if not sep or len(hex_digest) != 64 or not name:
        raise BackupIOError(f"Malformed checksum file: {sidecar_path}")
    try:
        int(hex_digest, 16)
    except ValueError:
        raise BackupIOError(f"Malformed checksum file: {sidecar_path}")

    return hex_digest.lower(), name


def verify_sha256_file(path: str) -> bool:
    """Check an artifact against its ``.sha256`` sidecar."""
    expected, name = read_sha256_file(path + SIDECAR_SUFFIX)
    if name != os.path.basename(path):
        return False
    return sha256_of_file(path) == expected
