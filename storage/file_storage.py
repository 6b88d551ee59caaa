import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from utils.logger import setup_logger


class FileStorage:
    """Write rendered exports to disk atomically, keeping backups of overwritten files."""

    def __init__(self, export_dir: Union[str, Path], *, logger=None, keep_backups: int = 3) -> None:
        self.export_dir = Path(export_dir)
        self.keep_backups = keep_backups
        self.logger = logger or setup_logger(self.__class__.__name__)

    def save_workbook(self, data: bytes, file_name: str) -> Optional[Path]:
        """
        Persist a rendered workbook under the export directory.

        Returns the written path, or None when the write failed.
        """
        path = self.export_dir / self._safe_name(file_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = None
        if path.exists():
            backup_path = self.backup_file(path)

        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
            self.logger.info("Saved export %s (%d bytes).", path, len(data))
            return path
        except OSError as exc:
            self.logger.error("Failed to save %s: %s", path, exc)
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            if backup_path:
                self._restore_backup(backup_path, path)
            return None

    def backup_file(self, file_path: Path) -> Optional[Path]:
        """Create a timestamped backup and trim history to the latest copies."""
        path = Path(file_path)
        if not path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = path.with_name(f"{path.name}.{timestamp}.bak")
        shutil.copy2(path, backup_path)
        self._cleanup_old_backups(path)
        return backup_path

    def _cleanup_old_backups(self, file_path: Path) -> None:
        pattern = f"{file_path.name}.*.bak"
        backups = sorted(file_path.parent.glob(pattern), key=lambda p: p.name, reverse=True)
        for old in backups[self.keep_backups:]:
            try:
                old.unlink()
            except OSError as exc:
                self.logger.warning("Failed to remove old backup %s: %s", old, exc)

    def _restore_backup(self, backup_path: Path, target_path: Path) -> None:
        try:
            shutil.copy2(backup_path, target_path)
            self.logger.info("Restored backup %s after failed save.", backup_path)
        except OSError as exc:
            self.logger.error("Failed to restore backup %s: %s", backup_path, exc)

    @staticmethod
    def _safe_name(file_name: str) -> str:
        name = Path(file_name).name
        name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
        return name or "export.xlsx"
