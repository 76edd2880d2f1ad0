"""Configuration utilities."""
from dataclasses import dataclass, field
from typing import Optional
import os, sys
from pathlib import Path
from dotenv import load_dotenv  # type: ignore

STORAGE_SQL = "sql"
STORAGE_LOCAL = "local"


class ConfigError(RuntimeError):
    """Raised at startup when a required setting is missing or invalid."""


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    return val if val not in (None, "") else default


def _from_env(name: str, default: Optional[str] = None):
    # Read at instantiation so a loaded .env file or a test override is honoured
    return field(default_factory=lambda: _env(name, default))


@dataclass
class Settings:
    storage: str = _from_env("DARKNOVA_STORAGE", STORAGE_SQL)
    db_url: Optional[str] = field(default_factory=lambda: _env("DARKNOVA_DB_URL") or _env("DARKNOVA_DATABASE_URL"))
    state_file: str = _from_env("DARKNOVA_STATE_FILE", "data/darknova_state.json")
    secret_key: Optional[str] = _from_env("SECRET_KEY")
    admin_user: str = _from_env("DARKNOVA_ADMIN_USER", "admin")
    admin_pass: str = _from_env("DARKNOVA_ADMIN_PASS", "admin")
    login_domain: str = _from_env("DARKNOVA_LOGIN_DOMAIN", "darknova.app")

    def _bundle_base(self) -> Optional[str]:
        base = getattr(sys, "_MEIPASS", None)
        if base and os.path.isdir(base):
            return base
        return None

    def repo_root(self) -> str:
        base = self._bundle_base()
        if base:
            return base
        # Walk upward from this file looking for project markers
        cur = os.path.abspath(os.path.dirname(__file__))
        markers = ("pyproject.toml", ".git")
        for _ in range(8):
            if any(os.path.exists(os.path.join(cur, m)) for m in markers):
                return cur
            parent = os.path.dirname(cur)
            if parent == cur:
                break
            cur = parent
        # Fallback: packages/core/src/darknova_core -> repo root
        return os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../../"))

    def load_backend_env(self) -> None:
        """Load canonical backend env file if present (idempotent)."""
        env_file = Path(self.repo_root()) / "config" / "env" / ".env.backend"
        if env_file.exists():
            load_dotenv(env_file, override=False)

    def resolve_path(self, p: Optional[str]) -> Optional[str]:
        if not p:
            return None
        if os.path.isabs(p):
            return p
        return os.path.abspath(os.path.join(self.repo_root(), p))

    def effective_state_file(self) -> str:
        return self.resolve_path(self.state_file) or os.path.join(self.repo_root(), "data", "darknova_state.json")

    def validate(self) -> None:
        """Fail fast on a configuration the selected storage cannot run with."""
        if self.storage not in (STORAGE_SQL, STORAGE_LOCAL):
            raise ConfigError(f"DARKNOVA_STORAGE must be '{STORAGE_SQL}' or '{STORAGE_LOCAL}', got {self.storage!r}")
        if self.storage == STORAGE_SQL:
            missing = [name for name, val in (("DARKNOVA_DB_URL", self.db_url), ("SECRET_KEY", self.secret_key)) if not val]
            if missing:
                raise ConfigError(f"missing required settings for sql storage: {', '.join(missing)}")


def load_settings() -> Settings:
    """Load the backend env file, then build settings from the environment."""
    Settings().load_backend_env()
    return Settings()


__all__ = ["Settings", "ConfigError", "load_settings", "STORAGE_SQL", "STORAGE_LOCAL"]
