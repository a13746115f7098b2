"""
Command-line entry point.

Usage: cluster-backup [OPTIONS]

S3 settings come from BUCKET_NAME, BUCKET_REGION, AWS_ACCESS_KEY_ID,
AWS_SECRET_ACCESS_KEY and BUCKET_KEY_PREFIX.

Exit codes:
  0 - Success (bundle uploaded)
  1 - Backup failed
  2 - Invalid arguments
"""

import argparse
import logging
import sys
from typing import List, Optional

from clusterbackup import configure_logging
from clusterbackup.backup.errors import BackupError, StageFailed
from clusterbackup.backup.executor import run_backup
from clusterbackup.config import (
    DEFAULT_ETCD_BACKUP_TIMEOUT,
    DEFAULT_ETCD_DIAL_TIMEOUT,
    DEFAULT_ETCD_ENV_FILE,
    BackupConfig,
    parse_duration,
)


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cluster-backup',
        description='Back up etcd and the control-plane static resources to S3.'
    )
    parser.add_argument('--etcd-env-file', default=DEFAULT_ETCD_ENV_FILE,
                        help='The path to the etcd environment variable file.')
    parser.add_argument('--etcd-dial-timeout', default=DEFAULT_ETCD_DIAL_TIMEOUT,
                        help='The timeout for failing to establish a connection to etcd.')
    parser.add_argument('--etcd-backup-timeout', default=DEFAULT_ETCD_BACKUP_TIMEOUT,
                        help='The timeout for backing up etcd.')
    parser.add_argument('--keep-local-backup', '--keepLocalBackup', action='store_true',
                        help='Keep the local backup once uploaded.')
    parser.add_argument('--etcdctl', default='etcdctl',
                        help='Path to the etcdctl binary.')
    parser.add_argument('--temp-dir', default=None,
                        help='Parent directory for the working directory.')
    parser.add_argument('--log-file', default=None,
                        help='Also write logs to this file.')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging.')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = BackupConfig.from_env(
            etcd_env_file=args.etcd_env_file,
            etcdctl_path=args.etcdctl,
            etcd_dial_timeout=parse_duration(args.etcd_dial_timeout),
            etcd_backup_timeout=parse_duration(args.etcd_backup_timeout),
            keep_local_backup=args.keep_local_backup,
            temp_dir=args.temp_dir,
            log_file=args.log_file,
        )
    except BackupError as e:
        configure_logging(logging.INFO)
        logger.error(f"backup status=failed stage=init: {e}")
        return 1

    configure_logging(logging.DEBUG if args.verbose else logging.INFO, config.log_file)

    try:
        run_backup(config)
    except StageFailed:
        # run_backup already logged the failing stage
        return 1
    except BackupError as e:
        logger.error(f"backup status=failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
