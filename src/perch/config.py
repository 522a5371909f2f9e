"""Upload and decoding configuration.

UploadConfig is a frozen dataclass — immutable after creation, no
string-key dict lookups.
"""

from dataclasses import dataclass
from pathlib import Path

from perch.errors import ConfigurationError

# Uploads larger than this are spilled to a temporary file on disk.
DEFAULT_MAX_MEMORY = 32 << 20

# Leading bytes inspected when sniffing a MIME type.
SNIFF_LENGTH = 512


@dataclass(frozen=True, slots=True)
class UploadConfig:
    """Limits for buffering request bodies and uploaded files.

    All fields have sensible defaults. Override what you need::

        config = UploadConfig(max_memory=1 << 20, temp_dir="/var/tmp/uploads")
    """

    max_memory: int = DEFAULT_MAX_MEMORY
    sniff_length: int = SNIFF_LENGTH
    temp_dir: str | Path | None = None
    temp_prefix: str = "perch-file-"

    def __post_init__(self) -> None:
        if self.max_memory < 0:
            msg = f"UploadConfig.max_memory must not be negative, got {self.max_memory}."
            raise ConfigurationError(msg)
        if self.sniff_length < 1:
            msg = f"UploadConfig.sniff_length must be positive, got {self.sniff_length}."
            raise ConfigurationError(msg)


DEFAULT_CONFIG = UploadConfig()
