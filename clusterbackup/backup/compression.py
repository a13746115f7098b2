"""
Archive builder for backup artifacts.

Writes gzip-compressed tar archives from regular files and directory trees.
Entry names are POSIX paths relative to a prefix that is either given
explicitly, so that several scattered roots share one namespace, or derived
from the parent directory of each root, so that a root ``/a/b`` is archived
as ``b/...``. Restore tooling depends on this naming rule.
"""

import gzip
import logging
import os
import stat
import tarfile
from typing import Iterable, List, Optional

from .errors import BackupIOError, UnsupportedFileType


logger = logging.getLogger(__name__)


def resolve_strip_prefix(root: str, prefix: Optional[str] = None) -> str:
    """
    Return the prefix to strip from every path walked under ``root``.

    Args:
        root: Source root being archived
        prefix: Explicit prefix; used verbatim when non-empty

    Returns:
        Prefix without a trailing separator
    """
    if prefix:
        stripped = prefix.rstrip('/')
        return stripped or '/'
    return os.path.dirname(os.path.normpath(root))


def archive_name(path: str, strip_prefix: str) -> str:
    """
    Compute the archive entry name of ``path``.

    The prefix is only removed on a path component boundary. Leading
    separators are always stripped, so a name never starts with ``/``.
    """
    name = os.path.normpath(path).replace(os.sep, '/')
    base = strip_prefix.replace(os.sep, '/').rstrip('/')
    if base and (name == base or name.startswith(base + '/')):
        name = name[len(base):]
    return name.lstrip('/')


def _describe_mode(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return 'symlink'
    if stat.S_ISFIFO(mode):
        return 'named pipe'
    if stat.S_ISSOCK(mode):
        return 'socket'
    if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        return 'device'
    return 'unknown'


class _TarTreeWriter:
    """Adds roots to an open tar stream following the prefix rule."""

    def __init__(self, tar: tarfile.TarFile, prefix: str, skip: set):
        self.tar = tar
        self.prefix = prefix
        self.skip = skip
        self.entries = 0

    def add_root(self, root: str):
        try:
            st = os.lstat(root)
        except OSError as e:
            raise BackupIOError(f"Path does not exist or is unreadable: {root}: {e}") from e

        strip_prefix = resolve_strip_prefix(root, self.prefix)

        if stat.S_ISREG(st.st_mode):
            self._add_file(root, archive_name(root, strip_prefix))
        elif stat.S_ISDIR(st.st_mode):
            self._add_tree(root, strip_prefix)
        else:
            raise UnsupportedFileType(root, _describe_mode(st.st_mode))

    def _add_file(self, path: str, name: str):
        with open(path, 'rb') as data:
            info = self.tar.gettarinfo(arcname=name, fileobj=data)
            # every member carries its own content, hard links included
            if info.islnk():
                info.type = tarfile.REGTYPE
                info.linkname = ''
                info.size = os.fstat(data.fileno()).st_size
            self.tar.addfile(info, data)
        self.entries += 1

    def _add_tree(self, directory: str, strip_prefix: str):
        name = archive_name(directory, strip_prefix)
        # the archive root itself has no entry
        if name:
            self.tar.addfile(self.tar.gettarinfo(directory, arcname=name))
            self.entries += 1

        with os.scandir(directory) as it:
            children = sorted(it, key=lambda entry: entry.name)

        for child in children:
            if os.path.abspath(child.path) in self.skip:
                continue
            mode = child.stat(follow_symlinks=False).st_mode
            if stat.S_ISDIR(mode):
                self._add_tree(child.path, strip_prefix)
            elif stat.S_ISREG(mode):
                self._add_file(child.path, archive_name(child.path, strip_prefix))
            else:
                raise UnsupportedFileType(child.path, _describe_mode(mode))


def create_archive(
    source_paths: List[str],
    output_path: str,
    prefix: Optional[str] = '',
    exclude: Iterable[str] = ()
) -> str:
    """
    Create a gzip-compressed tar archive from source paths.

    Regular-file roots are added as single entries; directory roots are
    walked recursively in lexical order and every directory and file visited
    gets an entry. Header metadata is taken from the live filesystem.

    Args:
        source_paths: Files and directories to archive
        output_path: Archive to write
        prefix: Prefix stripped from every entry path; when empty, the parent
            directory of each root is stripped instead
        exclude: Paths never archived (the output file is always excluded)

    Returns:
        Path of the created archive

    Raises:
        UnsupportedFileType: If a root or walked entry is a symlink, pipe,
            socket or device
        BackupIOError: If a source cannot be read or the archive written
    """
    if not source_paths:
        raise BackupIOError("No source paths provided")

    skip = {os.path.abspath(output_path)}
    skip.update(os.path.abspath(path) for path in exclude)

    created = False
    try:
        with open(output_path, 'wb') as fileobj:
            created = True
            with gzip.GzipFile(fileobj=fileobj, mode='wb') as gz:
                with tarfile.open(fileobj=gz, mode='w') as tar:
                    writer = _TarTreeWriter(tar, prefix, skip)
                    for source_path in source_paths:
                        writer.add_root(source_path)
    except BackupIOError:
        _remove_partial(output_path, created)
        raise
    except (OSError, tarfile.TarError) as e:
        _remove_partial(output_path, created)
        raise BackupIOError(f"Failed to create archive {output_path}: {e}") from e

    logger.info(f"Archive created: {output_path} ({writer.entries} entries)")
    return output_path


def _remove_partial(output_path: str, created: bool):
    """Delete an incomplete archive so it is never mistaken for a finished one."""
    if not created:
        return
    try:
        os.remove(output_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove partial archive {output_path}: {e}")


def list_archive(archive_path: str) -> List[str]:
    """
    List entry names of an archive in stored order.

    Raises:
        BackupIOError: If the archive cannot be read
    """
    try:
        with tarfile.open(archive_path, 'r:gz') as tar:
            return tar.getnames()
    except (OSError, tarfile.TarError) as e:
        raise BackupIOError(f"Failed to read archive {archive_path}: {e}") from e


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        BackupIOError: If the file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise BackupIOError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise BackupIOError(f"Failed to get archive size: {e}") from e
