from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DLTSPEC_MCP_ALLOWED_ROOT: Path = Path("./dltspec-output")
    DLTSPEC_MCP_RESOURCE_MAX_CHARS: int = 100000
    DLTSPEC_MCP_STATE_DIRNAME: str = ".dltspec"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
