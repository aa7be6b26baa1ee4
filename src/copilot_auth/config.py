"""Router config file access with atomic writes and credential validation.

This module handles all persistent state for copilot-auth:

* **Directory layout** -- ``$CCR_CONFIG_DIR`` when set, otherwise
  ``~/.claude-code-router/``, the directory the router itself reads. See
  :func:`get_config_dir` and :func:`get_logs_dir`.
* **Router config** -- ``config.json`` deserialised into a
  :class:`~copilot_auth.models.RouterConfig`. Managed via :func:`load_config`,
  :func:`save_config` and :func:`backup_config`.
* **Credential boundary** -- :class:`ConfigStore` reads and writes the Copilot
  provider's ``auth`` entry and validates it into a
  :data:`~copilot_auth.models.Credential` on the way in.
* **Settings** -- :func:`resolve_settings` reads the ``CCR_*`` environment
  variables that drive the login command.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) with ``0o600`` permissions, since the config holds
bearer tokens in plain text.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from copilot_auth.exceptions import ConfigError, NotAuthenticated, PersistenceError
from copilot_auth.models import (
    AuthSettings,
    OAuthCredential,
    PATCredential,
    RouterConfig,
    parse_credential,
)
from copilot_auth.provider import COPILOT_PROVIDER_NAME, find_copilot_provider, update_provider_auth

logger = logging.getLogger(__name__)

_CONFIG_DIR_ENV = "CCR_CONFIG_DIR"
_DEFAULT_DIR_NAME = ".claude-code-router"
_CONFIG_FILENAME = "config.json"


# --- Paths ---


def get_config_dir() -> Path:
    """Return the router's configuration directory, creating it if necessary.

    Returns:
        ``$CCR_CONFIG_DIR`` if set, otherwise ``~/.claude-code-router/``.
    """
    env_value = os.environ.get(_CONFIG_DIR_ENV, "")
    path = Path(env_value).expanduser() if env_value else Path.home() / _DEFAULT_DIR_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Path to the router's ``config.json``."""
    return get_config_dir() / _CONFIG_FILENAME


def get_logs_dir() -> Path:
    """Return the crash-log directory (``<config_dir>/logs/``), creating it if necessary."""
    path = get_config_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. Permissions are
    restricted to the owner before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, 0o600)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Router config ---


def load_config(path: Optional[Path] = None) -> RouterConfig:
    """Load the router config.

    Args:
        path: Explicit config file path. Defaults to :func:`get_config_path`.

    Returns:
        The deserialised :class:`~copilot_auth.models.RouterConfig`. A missing
        file yields an empty config.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            validation.
    """
    path = path or get_config_path()
    if not path.is_file():
        return RouterConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return RouterConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid router config at {path}: {exc}") from exc


def save_config(config: RouterConfig, path: Optional[Path] = None) -> None:
    """Persist the router config atomically.

    Raises:
        OSError: If the file cannot be written.
    """
    path = path or get_config_path()
    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    _atomic_write(path, json.dumps(data, indent=2) + "\n")


def backup_config(path: Optional[Path] = None) -> Optional[Path]:
    """Copy the current config next to itself with a timestamp suffix.

    Returns:
        The backup path, or ``None`` when there is no config to back up.

    Raises:
        PersistenceError: If the backup cannot be written.
    """
    path = path or get_config_path()
    if not path.is_file():
        return None
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = path.with_name(f"{path.name}.{timestamp}.bak")
    try:
        shutil.copy2(path, backup_path)
        os.chmod(backup_path, 0o600)
    except OSError as exc:
        raise PersistenceError(f"Cannot back up {path}: {exc}") from exc
    return backup_path


# --- Credential boundary ---


class ConfigStore:
    """Read/write the Copilot credential inside the router config.

    The store keeps the last loaded :class:`~copilot_auth.models.RouterConfig`
    so that a write only touches the Copilot provider's ``auth`` entry and
    leaves everything else in the file as it was.

    Args:
        path: Config file path. Defaults to :func:`get_config_path`.
        provider_name: Name of the provider entry holding the credential.

    Example::

        store = ConfigStore()
        credential = store.read_credential()
        store.write_credential(updated)
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        provider_name: str = COPILOT_PROVIDER_NAME,
    ) -> None:
        self._path = path
        self._provider_name = provider_name
        self._config: Optional[RouterConfig] = None

    @property
    def path(self) -> Path:
        """The filesystem path of the router config."""
        return self._path or get_config_path()

    @property
    def config(self) -> RouterConfig:
        """The router config, loaded on first access."""
        if self._config is None:
            self._config = load_config(self.path)
        return self._config

    def reload(self) -> RouterConfig:
        """Discard the cached config and read it from disk again."""
        self._config = None
        return self.config

    def read_credential(self) -> Union[OAuthCredential, PATCredential]:
        """Return the validated Copilot credential.

        Raises:
            NotAuthenticated: If no Copilot provider or no ``auth`` entry exists.
            ConfigError: If the stored entry is not a valid credential.
        """
        provider = find_copilot_provider(self.config)
        if provider is None or not provider.auth:
            raise NotAuthenticated(
                "GitHub Copilot is not configured. Run: copilot-auth login"
            )
        try:
            return parse_credential(provider.auth)
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid GitHub Copilot credential in {self.path}: {exc}"
            ) from exc

    def write_credential(self, credential: Union[OAuthCredential, PATCredential]) -> None:
        """Store *credential* in the Copilot provider entry and save the config.

        Raises:
            PersistenceError: If the config file cannot be written.
        """
        update_provider_auth(self.config, credential)
        self.save()

    def save(self) -> None:
        """Write the cached config to disk.

        Raises:
            PersistenceError: If the config file cannot be written.
        """
        try:
            save_config(self.config, self.path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc
        logger.debug("Saved router config to %s", self.path)


# --- Settings ---


def resolve_settings() -> AuthSettings:
    """Resolve login settings from the environment.

    Variables:
        - ``CCR_GITHUB_CLIENT_ID`` -- OAuth client id; enables the device flow.
        - ``CCR_GITHUB_COPILOT_PAT`` -- token used in non-interactive PAT mode.
        - ``NON_INTERACTIVE_MODE`` -- ``"true"`` disables prompts.
        - ``CCR_GITHUB_COPILOT_MODEL`` -- default model written to ``Router.default``.

    Returns:
        An :class:`~copilot_auth.models.AuthSettings`.
    """
    return AuthSettings(
        client_id=os.environ.get("CCR_GITHUB_CLIENT_ID") or None,
        pat=os.environ.get("CCR_GITHUB_COPILOT_PAT") or None,
        non_interactive=os.environ.get("NON_INTERACTIVE_MODE") == "true",
        default_model=os.environ.get("CCR_GITHUB_COPILOT_MODEL") or None,
    )
