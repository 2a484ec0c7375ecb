from pathlib import Path
from .config import settings
from .errors import OutputDirNotAllowedError

def validate_output_dir(path: Path) -> Path:
    """
    Validates that the path is within the allowed root.
    Relative paths are taken relative to the allowed root.
    Returns the resolved absolute path.
    """
    allowed_root = settings.DLTSPEC_MCP_ALLOWED_ROOT.resolve()
    candidate = path if path.is_absolute() else allowed_root / path
    try:
        resolved_path = candidate.resolve()
    except (ValueError, RuntimeError) as e:
        raise OutputDirNotAllowedError(f"Invalid path: {e}")

    if not resolved_path.is_relative_to(allowed_root):
        raise OutputDirNotAllowedError(f"Path {path} is not within allowed root {allowed_root}")
    return resolved_path
