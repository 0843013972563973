"""
Backup utility for the inventory collection files.
Keeps timestamped copies of a JSON collection before it is overwritten.
"""
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"


class BackupManager:
    """Manages automatic backups of collection files."""

    def __init__(self, data_dir: Path, backup_dir: Optional[Path] = None, keep: int = 10):
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir) if backup_dir else (self.data_dir / 'backups')
        self.keep = keep
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def create_backup(self, filename: str) -> bool:
        """Create a timestamped backup of a data file."""
        source = self.data_dir / filename
        if not source.exists():
            logger.warning("File not found for backup: %s", filename)
            return False
        timestamp = datetime.now().strftime(TIMESTAMP_FORMAT)
        destination = self.backup_dir / f"{source.stem}_{timestamp}{source.suffix}"
        try:
            shutil.copy2(source, destination)
        except OSError as e:
            logger.error("Backup failed for %s: %s", filename, e)
            return False
        logger.debug("Backup created: %s", destination.name)
        self._cleanup_old_backups(source.name)
        return True

    def _cleanup_old_backups(self, filename: str):
        """Remove old backups, keeping only the most recent ones (none when keep <= 0)."""
        backups = self._backups_of(filename)
        for backup in backups[:len(backups) - max(self.keep, 0)]:
            try:
                backup.unlink()
                logger.debug("Removed old backup: %s", backup.name)
            except OSError as e:
                logger.error("Failed to remove old backup %s: %s", backup.name, e)

    def _backups_of(self, filename: str) -> list:
        # The timestamp sorts lexicographically in creation order
        pattern = f"{Path(filename).stem}_*{Path(filename).suffix}"
        return sorted(self.backup_dir.glob(pattern), key=lambda p: p.name)

    @staticmethod
    def original_name(backup_filename: str) -> str:
        """batches_20260101_120000_000001.json -> batches.json"""
        path = Path(backup_filename)
        return path.stem.rsplit('_', 3)[0] + path.suffix

    def restore_backup(self, backup_filename: str) -> bool:
        """Restore a specific backup file over its collection (the current file is backed up first)."""
        backup_path = self.backup_dir / backup_filename
        if not backup_path.exists():
            logger.error("Backup not found: %s", backup_filename)
            return False
        original_name = self.original_name(backup_filename)
        destination = self.data_dir / original_name
        if destination.exists():
            self.create_backup(destination.name)
        try:
            shutil.copy2(backup_path, destination)
        except OSError as e:
            logger.error("Restore failed for %s: %s", backup_filename, e)
            return False
        logger.info("Restored backup: %s -> %s", backup_filename, original_name)
        return True

    def list_backups(self, filename: Optional[str] = None) -> list:
        """List all backups (newest first) or the backups of one file."""
        if filename:
            backups = self._backups_of(filename)
        else:
            backups = sorted(self.backup_dir.glob("*.json"), key=lambda p: p.name)
        return [
            {
                'name': b.name,
                'size': b.stat().st_size,
                'created': datetime.fromtimestamp(b.stat().st_mtime).strftime('%Y-%m-%d %H:%M:%S')
            }
            for b in reversed(backups)
        ]
