"""
Maintenance commands.
Usage: rentalhub backup clean --trash-days 15 --delete-days 7
"""
import logging
import sys

import click

from rentalhub.core import backup_lifecycle, rental_lifecycle
from rentalhub.core.errors import RentalHubError
from rentalhub.core.property_status import sync_all_property_statuses
from rentalhub.db.database import SessionLocal, init_db
from rentalhub.models.backup import BACKUP_TYPES, STATUS_COMPLETED
from rentalhub.utils.logging_config import configure_logging
from rentalhub.utils.settings_loader import get_backup_settings

logger = logging.getLogger(__name__)


def _session():
    init_db()
    return SessionLocal()


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def cli(log_level):
    """RentalHub maintenance commands."""
    configure_logging(log_level)


@cli.group()
def backup():
    """Database backup lifecycle."""


@backup.command("create")
@click.option("--type", "backup_type", type=click.Choice(BACKUP_TYPES), default="manual")
def create_backup(backup_type):
    click.echo(f"Creating {backup_type} database backup...")
    db = _session()
    try:
        record = backup_lifecycle.create_backup(db, backup_type)
        click.echo(f"Filename: {record.filename}")
        click.echo(f"Status: {record.status}")
        if record.status != STATUS_COMPLETED:
            click.echo(f"Backup failed: {record.error_message}", err=True)
            sys.exit(1)
        click.echo(f"Size: {backup_lifecycle.format_bytes(record.file_size)}")
    finally:
        db.close()


@backup.command("clean")
@click.option("--trash-days", type=int, default=None, help="Days before moving backups to trash.")
@click.option("--delete-days", type=int, default=None, help="Days in trash before permanent deletion.")
def clean(trash_days, delete_days):
    settings = get_backup_settings()
    trash_days = settings["trash_after_days"] if trash_days is None else trash_days
    delete_days = settings["delete_after_days"] if delete_days is None else delete_days

    db = _session()
    try:
        result = backup_lifecycle.retention_sweep(db, trash_days, delete_days)
    except Exception as e:
        logger.error("Backup cleanup failed: %s", e)
        click.echo(f"Backup cleanup failed: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Moved to trash (older than {trash_days} days): {result.moved_to_trash}")
    click.echo(f"Permanently deleted (trashed over {delete_days} days): {result.permanently_deleted}")
    click.echo(f"Freed up space: {backup_lifecycle.format_bytes(result.bytes_freed)}")


@backup.command("auto-trash")
@click.option("--days", type=int, default=None)
def auto_trash(days):
    days = get_backup_settings()["trash_after_days"] if days is None else days
    db = _session()
    try:
        moved = backup_lifecycle.auto_trash(db, days)
    finally:
        db.close()
    click.echo(f"Moved {moved} backup(s) to trash.")


@backup.command("cleanup-trash")
@click.option("--days", type=int, default=None)
def cleanup_trash(days):
    days = get_backup_settings()["delete_after_days"] if days is None else days
    db = _session()
    try:
        deleted, freed = backup_lifecycle.purge_trash(db, days)
    finally:
        db.close()
    click.echo(f"Deleted {deleted} backup(s) permanently ({backup_lifecycle.format_bytes(freed)}).")


@backup.command("cleanup-by-age")
@click.option("--days", type=int, default=None, help="Delete completed backups older than this.")
def cleanup_by_age(days):
    days = get_backup_settings()["cleanup_by_age_days"] if days is None else days
    db = _session()
    try:
        result = backup_lifecycle.cleanup_by_age(db, days)
    finally:
        db.close()
    if result.permanently_deleted:
        click.echo(f"Cleaned {result.permanently_deleted} old backup(s) older than {days} days")
    else:
        click.echo("No old backups found to clean up")


@backup.command("restore")
@click.argument("backup_id", type=int)
@click.confirmation_option(prompt="This replaces all current data. Continue?")
def restore(backup_id):
    db = _session()
    try:
        record = backup_lifecycle.restore_database(db, backup_id)
    except RentalHubError as e:
        click.echo(f"Restore failed: {e.message}", err=True)
        sys.exit(1)
    finally:
        db.close()
    click.echo(f"Database restored from {record.filename}")


@backup.command("stats")
def stats():
    db = _session()
    try:
        data = backup_lifecycle.backup_statistics(db)
    finally:
        db.close()
    for key, value in data.items():
        click.echo(f"{key}: {value}")


@cli.group()
def rentals():
    """Rental and property status maintenance."""


@rentals.command("sync-statuses")
def sync_statuses():
    db = _session()
    try:
        updated = sync_all_property_statuses(db)
    finally:
        db.close()
    click.echo(f"Successfully synced property statuses. {updated} properties updated.")


@rentals.command("expire-overdue")
def expire_overdue():
    db = _session()
    try:
        expired = rental_lifecycle.expire_overdue_rentals(db)
    finally:
        db.close()
    click.echo(f"Marked {expired} overdue rental(s) as expired.")


if __name__ == "__main__":
    cli()
