import hashlib
from pathlib import Path

def sha256_file(path: Path) -> str:
    """Calculates the SHA256 hash of a file efficiently."""
    sha256_hash = hashlib.sha256()
    with open(path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()

def read_text_chunk(path: Path, offset: int, limit: int) -> tuple[str, int]:
    """
    Reads up to ``limit`` characters starting at character ``offset``.
    Returns (content, total_chars).
    """
    text = path.read_text(encoding="utf-8")
    return text[offset : offset + limit], len(text)
