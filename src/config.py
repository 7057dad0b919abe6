"""Runtime configuration for the agent hub.

All settings come from environment variables (AGENT_HUB_*). Defaults target
local development: an engine on localhost:5678 and this service on :8001.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

_SRC_DIR = Path(__file__).parent

DEFAULT_ENGINE_BASE_URL = "http://localhost:5678"
DEFAULT_PROXY_ORIGIN = "http://localhost:8001"
DEFAULT_STORAGE_PATH = str(_SRC_DIR / "persistence" / "agent_hub.db")
DEFAULT_AGENTS_DIR = _SRC_DIR / "agents" / "definitions"

# Browsers cap localStorage at 5-10MB; the history store keeps the same budget
DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024
DEFAULT_NAMESPACE = "agent-hub"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Service settings. Build with Settings.from_env() in production."""

    engine_base_url: str = DEFAULT_ENGINE_BASE_URL
    engine_api_key: Optional[str] = None
    use_proxy: bool = True
    proxy_origin: str = DEFAULT_PROXY_ORIGIN
    request_timeout: float = Field(default=30.0, gt=0)
    storage_path: str = DEFAULT_STORAGE_PATH
    storage_quota_bytes: int = Field(default=DEFAULT_STORAGE_QUOTA_BYTES, gt=0)
    namespace: str = DEFAULT_NAMESPACE
    agents_dir: Path = DEFAULT_AGENTS_DIR

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from AGENT_HUB_* environment variables."""
        return cls(
            engine_base_url=os.environ.get(
                "AGENT_HUB_ENGINE_BASE_URL", DEFAULT_ENGINE_BASE_URL
            ).rstrip("/"),
            engine_api_key=os.environ.get("AGENT_HUB_ENGINE_API_KEY") or None,
            use_proxy=_env_bool("AGENT_HUB_USE_PROXY", True),
            proxy_origin=os.environ.get(
                "AGENT_HUB_PROXY_ORIGIN", DEFAULT_PROXY_ORIGIN
            ).rstrip("/"),
            request_timeout=float(os.environ.get("AGENT_HUB_REQUEST_TIMEOUT", "30")),
            storage_path=os.environ.get("AGENT_HUB_STORAGE_PATH", DEFAULT_STORAGE_PATH),
            storage_quota_bytes=int(
                os.environ.get(
                    "AGENT_HUB_STORAGE_QUOTA_BYTES", str(DEFAULT_STORAGE_QUOTA_BYTES)
                )
            ),
            namespace=os.environ.get("AGENT_HUB_NAMESPACE", DEFAULT_NAMESPACE),
            agents_dir=Path(
                os.environ.get("AGENT_HUB_AGENTS_DIR", str(DEFAULT_AGENTS_DIR))
            ),
        )
