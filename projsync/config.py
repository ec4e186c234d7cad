"""Configuration management for projsync.

Settings are resolved from environment variables first and then from the
config file in ``~/.config/projsync/config``.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

API_URL_ENV = "PROJSYNC_API_URL"
ACCESS_TOKEN_ENV = "PROJSYNC_ACCESS_TOKEN"

API_URL_KEY = "PROJSYNC_API_URL"
ACCESS_TOKEN_KEY = "PROJSYNC_ACCESS_TOKEN"


class Config:
    """Read and write projsync settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file
                (defaults to ~/.config/projsync)
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "projsync"
        self.config_dir = config_dir
        self.config_file = config_dir / "config"

    def _read_file(self) -> dict[str, str]:
        """Parse the KEY=value config file.

        Returns:
            Mapping of keys to values, empty if the file does not exist
        """
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values

        try:
            content = self.config_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read config file {self.config_file}: {e}")
            return values

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
        return values

    def _get(self, env_name: str, key: str) -> Optional[str]:
        value = os.environ.get(env_name)
        if value:
            return value
        return self._read_file().get(key) or None

    @property
    def api_url(self) -> Optional[str]:
        """Base URL of the project server, without a trailing slash."""
        url = self._get(API_URL_ENV, API_URL_KEY)
        return url.rstrip("/") if url else None

    @property
    def access_token(self) -> Optional[str]:
        """Bearer token sent with every request, if any."""
        return self._get(ACCESS_TOKEN_ENV, ACCESS_TOKEN_KEY)

    @property
    def state_dir(self) -> Path:
        """Directory where per-project sync state is stored."""
        return self.config_dir / "sync_state"

    def is_configured(self) -> bool:
        """Check whether a server URL is available."""
        return self.api_url is not None

    def get_config_path(self) -> Path:
        """Return the config file path."""
        return self.config_file

    def save(self, api_url: str, access_token: Optional[str] = None) -> None:
        """Persist the server URL and token to the config file.

        Args:
            api_url: Base URL of the project server
            access_token: Optional bearer token
        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        lines = [f"{API_URL_KEY}={api_url.rstrip('/')}"]
        if access_token:
            lines.append(f"{ACCESS_TOKEN_KEY}={access_token}")
        self.config_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        # The token is a credential
        self.config_file.chmod(0o600)
        logger.debug(f"Saved configuration to {self.config_file}")


config = Config()
