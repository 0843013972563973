from pathlib import Path

from larder.utilities.config import DATA_DIR

# Centralized paths for data files (single source of truth)
BACKUP_DIR = DATA_DIR / 'backups'


def collection_file(data_dir: Path, name: str) -> Path:
    """JSON file backing the named collection inside data_dir."""
    return Path(data_dir) / f'{name}.json'


__all__ = ['DATA_DIR', 'BACKUP_DIR', 'collection_file']
