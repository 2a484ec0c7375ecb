import pytest
from pathlib import Path
from dltspec_mcp.security import validate_output_dir
from dltspec_mcp.hashing import sha256_file, read_text_chunk
from dltspec_mcp.errors import OutputDirNotAllowedError
from dltspec_mcp.config import settings

def test_validate_output_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DLTSPEC_MCP_ALLOWED_ROOT", tmp_path)

    valid = tmp_path / "subdir"
    valid.mkdir()
    assert validate_output_dir(valid) == valid.resolve()

    # Relative paths land below the allowed root
    assert validate_output_dir(Path("github")) == (tmp_path / "github").resolve()

    with pytest.raises(OutputDirNotAllowedError):
        validate_output_dir(Path("/etc/passwd"))

    with pytest.raises(OutputDirNotAllowedError):
        validate_output_dir(Path("../outside"))

def test_hashing(tmp_path):
    f = tmp_path / "test.txt"
    f.write_text("hello world", encoding="utf-8")

    expected = "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
    assert sha256_file(f) == expected

def test_read_text_chunk(tmp_path):
    f = tmp_path / "numbers.md"
    f.write_text("0123456789", encoding="utf-8")

    assert read_text_chunk(f, 2, 3) == ("234", 10)
    assert read_text_chunk(f, 8, 5) == ("89", 10)
    assert read_text_chunk(f, 15, 5) == ("", 10)
