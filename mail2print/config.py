"""mail2print configuration.

Built once at startup from command-line arguments, with every field also
overridable through ``MAIL2PRINT_*`` environment variables (pydantic-settings).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "MAIL2PRINT_IMAP_", "frozen": True}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAPS port")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="Folder to watch")
    timeout_seconds: float = Field(
        default=10.0,
        description="Socket timeout for IMAP read operations",
    )
    verify_tls: bool = Field(
        default=False,
        description="Verify the server certificate (off: accept any certificate)",
    )
    keepalive_interval_seconds: float = Field(
        default=120.0,
        description="Seconds between keep-alive status commands in idle mode",
    )
    poll_interval_seconds: float = Field(
        default=30.0,
        description="Wait between passes when the server does not support IDLE",
    )


class RetryConfig(BaseSettings):
    """Reconnect backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "MAIL2PRINT_RETRY_", "frozen": True}

    max_attempts: int = Field(default=5, description="Maximum connect attempts")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=60.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class Mail2PrintConfig(BaseSettings):
    """Root configuration for a mail2print process."""

    model_config = {"env_prefix": "MAIL2PRINT_", "frozen": True}

    imap: ImapConfig = Field(default_factory=ImapConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    printer: str | None = Field(
        default=None,
        description="Printer to use; no printing when unset",
    )
    output_folder: Path | None = Field(
        default=None,
        description="Existing, writable folder where attachments are saved",
    )
    idle_mode: bool = Field(default=False, description="Stay resident and use IMAP IDLE")
    delete: bool = Field(
        default=False,
        description="Flag processed messages \\Deleted and expunge them",
    )
    convert_office_files: bool = Field(
        default=False,
        description="Let converters hand office documents to LibreOffice",
    )
    plugins_dir: Path = Field(
        default=Path("plugins"),
        description="Directory scanned for converter plugin modules",
    )
    office_binary: str = Field(default="soffice", description="LibreOffice executable")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("output_folder")
    @classmethod
    def _check_output_folder(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        if not value.is_dir() or not os.access(value, os.W_OK):
            raise ValueError(f"folder {value} does not exist or is not writeable")
        return value

    @model_validator(mode="after")
    def _check_has_target(self) -> Mail2PrintConfig:
        if self.printer is None and self.output_folder is None:
            raise ValueError("nothing to do: set a printer and/or an output folder")
        return self
