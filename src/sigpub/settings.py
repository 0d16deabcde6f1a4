from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SIGPUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Allowed signers file (trust anchor). Legacy deployments export SIGNERS_FILE.
    signers_file: Path | None = Field(
        None, validation_alias=AliasChoices("SIGPUB_SIGNERS_FILE", "SIGNERS_FILE")
    )
    # Scratch dir for incoming multipart parts before verification
    upload_temp: Path = Field(
        Path("./data/tmp"), validation_alias=AliasChoices("SIGPUB_UPLOAD_TEMP", "MULTER_TEMP")
    )
    upload_path: Path = Field(
        Path("./data/uploads"), validation_alias=AliasChoices("SIGPUB_UPLOAD_PATH", "UPLOAD_PATH")
    )
    host: str = "127.0.0.1"
    port: int = Field(8000, validation_alias=AliasChoices("SIGPUB_PORT", "EXPRESS_PORT"))

    max_files: int = 10  # per field (file[] and signature[])
    verifier: Literal["ssh-keygen", "ed25519"] = "ssh-keygen"
    ssh_keygen_bin: str = "ssh-keygen"
    verify_timeout_seconds: float = 30.0
    stale_staging_seconds: int = 3600
    log_level: str = "INFO"

    @property
    def alias_root(self) -> Path:
        """Directory holding one alias symlink per identifier (sibling of the upload root)."""
        return self.upload_path.resolve().parent

    def ensure_dirs(self) -> None:
        self.upload_temp.mkdir(parents=True, exist_ok=True)
        self.upload_path.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
