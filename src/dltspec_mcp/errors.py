class OutputDirNotAllowedError(Exception):
    """Raised when the output directory is not allowed."""
    pass
