#!/usr/bin/env python3
"""Run rclone-backup from a source checkout"""
from rclone_backup.cli import cli

if __name__ == '__main__':
    cli()
