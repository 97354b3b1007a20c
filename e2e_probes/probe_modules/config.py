"""Environment-driven configuration for probes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .utils import env_flag

DEFAULT_APP_URL = "http://localhost:8081"
DEFAULT_BACKEND_URL = "http://localhost:3001"
DEFAULT_AUTH_STATE_PATH = ".auth/user-state.json"
DEFAULT_OUTPUT_ROOT = "test-results"
DEFAULT_ENVIRONMENT = "local"

# Field name -> environment variable, used when reporting missing settings.
ENV_VAR_NAMES: Dict[str, str] = {
    "app_url": "APP_URL",
    "backend_url": "BACKEND_URL",
    "supabase_url": "SUPABASE_URL",
    "service_role_key": "SUPABASE_SERVICE_ROLE_KEY",
    "auth_state_path": "AUTH_STATE_PATH",
    "output_root": "PROBE_OUTPUT_ROOT",
    "environment": "PROBE_ENV",
}


class ProbeConfig(BaseModel):
    """Settings shared by every probe."""

    model_config = ConfigDict(frozen=True)

    app_url: str = DEFAULT_APP_URL
    backend_url: str = DEFAULT_BACKEND_URL
    supabase_url: Optional[str] = None
    service_role_key: Optional[str] = None
    headless: bool = True
    auth_state_path: Path = Path(DEFAULT_AUTH_STATE_PATH)
    output_root: Path = Path(DEFAULT_OUTPUT_ROOT)
    environment: str = DEFAULT_ENVIRONMENT

    @classmethod
    def from_env(cls) -> "ProbeConfig":
        """Build configuration from the current process environment."""

        return cls(
            app_url=(os.getenv("APP_URL") or DEFAULT_APP_URL).rstrip("/"),
            backend_url=(os.getenv("BACKEND_URL") or DEFAULT_BACKEND_URL).rstrip("/"),
            supabase_url=(os.getenv("SUPABASE_URL") or "").rstrip("/") or None,
            service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None,
            headless=env_flag("HEADLESS", default=True),
            auth_state_path=Path(os.getenv("AUTH_STATE_PATH") or DEFAULT_AUTH_STATE_PATH),
            output_root=Path(os.getenv("PROBE_OUTPUT_ROOT") or DEFAULT_OUTPUT_ROOT),
            environment=(os.getenv("PROBE_ENV") or DEFAULT_ENVIRONMENT).strip(),
        )

    def missing(self, *fields: str) -> List[str]:
        """Return environment variable names for the given fields that are unset."""

        return [ENV_VAR_NAMES.get(name, name.upper()) for name in fields if not getattr(self, name)]


__all__ = ["ENV_VAR_NAMES", "ProbeConfig"]
