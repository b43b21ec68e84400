"""Document file storage and path safety utilities."""

import logging
import secrets
import shutil
from pathlib import Path

from portal.services.sanitize import sanitize_filename

logger = logging.getLogger(__name__)

TRASH_DIR = ".trash"


class SecurityError(Exception):
    """Security-related error."""

    pass


class PathValidationError(SecurityError):
    """Path validation failed."""

    pass


def validate_path(path: str | Path, allowed_root: str | Path) -> Path:
    """Validate that a path is within the allowed root directory.

    Args:
        path: The path to validate
        allowed_root: The root directory that path must be within

    Returns:
        The canonicalized path

    Raises:
        PathValidationError: If path is outside allowed root or invalid
    """
    try:
        canonical_path = Path(path).resolve()
        canonical_root = Path(allowed_root).resolve()

        if not canonical_path.is_relative_to(canonical_root):
            raise PathValidationError(
                f"Path '{path}' is outside allowed root '{allowed_root}'"
            )

        return canonical_path

    except (ValueError, OSError) as e:
        raise PathValidationError(f"Invalid path '{path}': {e}")


def ensure_directory(path: str | Path, allowed_root: str | Path) -> Path:
    """Ensure a directory exists within the allowed root.

    Raises:
        PathValidationError: If path is outside allowed root
    """
    canonical_path = validate_path(path, allowed_root)
    canonical_path.mkdir(parents=True, exist_ok=True)
    return canonical_path


def directory_size(path: str | Path) -> int:
    """Total size in bytes of all files below ``path``; 0 if it is missing."""
    root = Path(path)
    if not root.exists():
        return 0
    total = 0
    for entry in root.rglob("*"):
        try:
            if entry.is_file():
                total += entry.stat().st_size
        except OSError:
            continue
    return total


def build_stored_filename(original_name: str, extension: str) -> str:
    """Server-side filename: short random prefix plus the sanitized stem."""
    stem = Path(original_name).stem if original_name else ""
    sanitized = sanitize_filename(stem.replace(" ", "_")) or "document"
    prefix = secrets.token_hex(4)
    return f"{prefix}_{sanitized}{extension}"


class DocumentStorage:
    """Committee-namespaced document store on local disk.

    Layout::

        {base}/{committee_id}/{stored_name}
        {base}/{committee_id}/.trash/{stored_name}

    Relative paths handed out by this class are always server-derived.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def _ensure_base(self) -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir.resolve()

    def resolve(self, relative_path: str) -> Path:
        """Absolute path of a stored (non-trash) file."""
        return validate_path(self.base_dir / relative_path, self._ensure_base())

    def trash_path(self, committee_id: int, relative_path: str) -> Path:
        """Absolute path a document occupies while in the trash."""
        name = Path(relative_path).name
        return validate_path(
            self.base_dir / str(committee_id) / TRASH_DIR / name, self._ensure_base()
        )

    def write(self, committee_id: int, stored_name: str, content: bytes) -> str:
        """Write bytes for a new document and return its relative path."""
        root = self._ensure_base()
        committee_dir = ensure_directory(self.base_dir / str(committee_id), root)
        target = validate_path(committee_dir / stored_name, root)
        target.write_bytes(content)
        return f"{committee_id}/{stored_name}"

    def remove(self, relative_path: str) -> bool:
        """Delete a stored (non-trash) file. Returns False when it is absent."""
        target = self.resolve(relative_path)
        if not target.exists():
            return False
        target.unlink()
        return True

    def move_to_trash(self, committee_id: int, relative_path: str) -> bool:
        """Move a document file into the committee trash.

        Returns False (and logs a warning) when the source file is missing.
        """
        source = self.resolve(relative_path)
        destination = self.trash_path(committee_id, relative_path)
        return self._move(source, destination)

    def restore_from_trash(self, committee_id: int, relative_path: str) -> bool:
        """Move a trashed file back to its original relative path."""
        source = self.trash_path(committee_id, relative_path)
        destination = self.resolve(relative_path)
        return self._move(source, destination)

    def unlink_trashed(self, committee_id: int, relative_path: str) -> bool:
        """Remove a trashed file permanently."""
        target = self.trash_path(committee_id, relative_path)
        if not target.exists():
            logger.warning(f"Could not permanently delete {target}: file does not exist")
            return False
        target.unlink()
        return True

    def _move(self, source: Path, destination: Path) -> bool:
        if not source.exists():
            logger.warning(f"Could not move {source} to {destination}: file does not exist")
            return False
        ensure_directory(destination.parent, self._ensure_base())
        shutil.move(str(source), str(destination))
        return True
