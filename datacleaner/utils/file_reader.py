"""
Import File Validation
======================

Path and size validation for files handed to the importer.

Implements:
- Optional confinement to an allowed directory using pathlib.resolve()
- File existence and size validation
- Supported extension check (csv, xlsx, xls)
"""

from pathlib import Path

from datacleaner.config.settings import get_settings
from datacleaner.utils.errors import FileSizeError, SecurityError, ValidationError
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = frozenset({"csv", "xlsx", "xls", "xlsm"})


def get_file_extension(file_path: Path) -> str:
    """
    Get lowercase file extension without the leading dot.

    Example:
        >>> get_file_extension(Path("/uploads/Profiles.XLSX"))
        'xlsx'
    """
    return file_path.suffix.lower().lstrip(".")


def validate_file_path(
    file_path: str | Path,
    allowed_base_dir: str | None = None,
) -> Path:
    """
    Validate a file path is readable and, if configured, inside the allowed directory.

    Args:
        file_path: The file path to validate (absolute or relative)
        allowed_base_dir: Base directory files must be within.
                          Defaults to settings.allowed_import_dir (None = anywhere)

    Returns:
        Path: Validated absolute path to the file

    Raises:
        SecurityError: If path is outside the allowed directory
        ValidationError: If the file doesn't exist or has an unsupported type
    """
    settings = get_settings()
    base = allowed_base_dir or settings.allowed_import_dir
    resolved_path = Path(file_path).expanduser().resolve()

    if base:
        base_dir = Path(base).expanduser().resolve()
        try:
            resolved_path.relative_to(base_dir)
        except ValueError as e:
            logger.warning(
                "Path traversal attempt blocked",
                file_path=str(file_path),
                resolved_path=str(resolved_path),
                allowed_base=str(base_dir),
            )
            raise SecurityError(
                message="File path is outside allowed directory",
                details={"file_path": str(file_path), "allowed_directory": str(base_dir)},
            ) from e

    if not resolved_path.is_file():
        raise ValidationError(
            message=f"File not found: {file_path}",
            details={"file_path": str(file_path)},
        )

    extension = get_file_extension(resolved_path)
    if extension not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            message=f"Unsupported file type: .{extension}",
            details={"file_path": str(file_path), "supported": sorted(SUPPORTED_EXTENSIONS)},
        )

    return resolved_path


def validate_file_size(file_path: Path, max_size_mb: int | None = None) -> int:
    """
    Validate file size is within allowed limits.

    Returns:
        int: File size in bytes

    Raises:
        FileSizeError: If file exceeds maximum size
    """
    settings = get_settings()
    max_size = max_size_mb or settings.max_file_size_mb
    max_bytes = max_size * 1024 * 1024

    file_size = file_path.stat().st_size

    if file_size > max_bytes:
        logger.warning(
            "File exceeds maximum size",
            file_path=str(file_path),
            file_size_bytes=file_size,
            max_size_bytes=max_bytes,
        )
        raise FileSizeError(
            message=f"File exceeds maximum size of {max_size}MB",
            details={
                "file_path": str(file_path),
                "file_size_mb": round(file_size / (1024 * 1024), 2),
                "max_size_mb": max_size,
            },
        )

    return file_size


def validate_import_file(
    file_path: str | Path,
    allowed_base_dir: str | None = None,
    max_size_mb: int | None = None,
) -> Path:
    """Validate path, type and size in one call; returns the resolved path."""
    validated_path = validate_file_path(file_path, allowed_base_dir)
    file_size = validate_file_size(validated_path, max_size_mb)

    logger.info(
        "File validated for import",
        file_path=str(validated_path),
        file_size_bytes=file_size,
    )
    return validated_path
