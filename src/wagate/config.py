"""
Application configuration.

Values come from ``WAGATE_*`` environment variables (a ``.env`` file in the
project directory is loaded first) and fall back to the defaults below.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

PROJECT_DIR = Path(os.getenv("WAGATE_APP_DATA", Path.cwd()))

ENV_PREFIX = "WAGATE_"


class Config(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000

    database_path: Path = PROJECT_DIR / "data" / "wagate.db"

    # Companion process driving the real messaging web client
    bridge_url: str = "ws://localhost:3100/bridge"
    bridge_timeout: float = 30.0
    bridge_init_timeout: float = 120.0

    reconnect_delay: float = 4.0
    history_limit: int = 50
    address_suffix: str = "@c.us"

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from the environment, ignoring unset variables."""
        load_dotenv(PROJECT_DIR / ".env")

        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "cors_origins":
                values[name] = [o.strip() for o in raw.split(",") if o.strip()]
            else:
                values[name] = raw
        return cls(**values)


CONFIG = Config.from_env()
