"""Command line interface: run, plan and schedule backups."""

import sys
import logging

import click

from rclone_backup import LOG_LEVELS, configure_logging
from rclone_backup.config import Config, ConfigError
from rclone_backup.backup.executor import BackupRunError, execute_backup, plan_retention
from rclone_backup.scheduler import create_scheduler


logger = logging.getLogger(__name__)


def prompt_confirmation(count: int) -> bool:
    """Ask on the terminal; only 'yes' (any case) confirms."""
    try:
        answer = click.prompt(
            f"Proceed with deleting {count} remote backups? (yes/NO)",
            default='NO',
            show_default=False
        )
    except click.Abort:
        return False
    return answer.strip().lower() == 'yes'


def _fail(message: str):
    click.echo(message, err=True)
    sys.exit(1)


def _load_config(config_file, **overrides) -> Config:
    try:
        config = Config.from_env(env_file=config_file, **overrides)
        configure_logging(config.log_level, config.log_file)
    except (ConfigError, OSError) as e:
        _fail(f"Configuration error: {e}")
    if config.config_file:
        logger.debug(f"Using config file: {config.config_file}")
    return config


def remote_options(func):
    """Options shared by every command that talks to the remote."""
    options = [
        click.option('-c', '--config', 'config_file', type=click.Path(dir_okay=False),
                     default=None, help='Path of the .env configuration file.'),
        click.option('-r', '--remote', 'remote_path', default=None,
                     help="Path on the remote where backups are stored (default: './')."),
        click.option('-p', '--prefix', default=None, help='Prefix for the backup archive name.'),
        click.option('-l', '--log-level', type=click.Choice(LOG_LEVELS, case_sensitive=False),
                     default=None, help='Log level (default: INFO).'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(package_name='rclone-backup')
def cli():
    """Archive a directory, upload it with rclone, and prune old backups."""


@cli.command()
@click.argument('source_dir')
@click.option('-y', '--yes', 'auto_confirm', is_flag=True,
              help='Automatically confirm deletion of old backups.')
@remote_options
def run(source_dir, auto_confirm, config_file, remote_path, prefix, log_level):
    """Back up SOURCE_DIR and apply the retention policy."""
    config = _load_config(
        config_file,
        source_dir=source_dir,
        remote_path=remote_path,
        prefix=prefix,
        log_level=log_level,
        auto_confirm=True if auto_confirm else None
    )

    try:
        summary = execute_backup(config, confirm=prompt_confirmation)
    except BackupRunError as e:
        _fail(str(e))

    click.echo(
        f"Backup {summary['archive']} uploaded. "
        f"Kept {len(summary['kept'])}, deleted {len(summary['deleted'])}"
        + (f", failed to delete {len(summary['delete_failed'])}" if summary['delete_failed'] else '')
        + '.'
    )


@cli.command()
@remote_options
def plan(config_file, remote_path, prefix, log_level):
    """Show what the retention policy would keep and delete."""
    config = _load_config(config_file, remote_path=remote_path, prefix=prefix, log_level=log_level)

    try:
        result = plan_retention(config)
    except BackupRunError as e:
        _fail(str(e))

    if not result.decisions:
        click.echo('No backups found.')
        return

    width = max(len(record.identifier) for record, _ in result.decisions)
    for record, decision in result.decisions:
        click.echo(f"{record.identifier.ljust(width)}  {decision.value}")

    click.echo(f"\n{len(result.kept)} kept, {len(result.to_delete)} to delete.")


@cli.command()
@click.argument('source_dir')
@click.option('--cron', 'schedule', default=None,
              help="Crontab expression, evaluated in UTC (default: BACKUP_SCHEDULE or '0 2 * * *').")
@click.option('-y', '--yes', 'auto_confirm', is_flag=True,
              help='Automatically confirm deletion of old backups.')
@remote_options
def schedule(source_dir, schedule, auto_confirm, config_file, remote_path, prefix, log_level):
    """Run backups of SOURCE_DIR on a cron schedule until interrupted.

    Without --yes (or AUTO_CONFIRM=true) scheduled runs never delete.
    """
    config = _load_config(
        config_file,
        source_dir=source_dir,
        schedule=schedule,
        remote_path=remote_path,
        prefix=prefix,
        log_level=log_level,
        auto_confirm=True if auto_confirm else None
    )

    try:
        config.validate()
        scheduler = create_scheduler(lambda: execute_backup(config), config.schedule)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")

    if not config.auto_confirm:
        logger.warning("Auto-confirmation disabled: scheduled runs will not delete old backups")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


if __name__ == '__main__':
    cli()
