#!/usr/bin/env python3
"""Backup runner for cron jobs"""
import sys

from clusterbackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
