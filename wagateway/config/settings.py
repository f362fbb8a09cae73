"""Dynaconf settings configuration"""

from pathlib import Path
from dynaconf import Dynaconf, Validator

PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

settings = Dynaconf(
    envvar_prefix="APP",
    settings_files=[
        str(CONFIG_DIR / "settings.toml"),
        str(CONFIG_DIR / "settings.local.toml"),
        str(CONFIG_DIR / ".secrets.toml"),
    ],
    environments=True,
    env_switcher="APP_ENV",
)

settings.validators.register(
    Validator("CREDENTIAL_BACKEND", is_in=["database", "file"], default="database"),
    Validator(
        "DATABASE_URL",
        must_exist=True,
        when=Validator("CREDENTIAL_BACKEND", eq="database"),
    ),
    Validator("REPLY_MODE", is_in=["webhook", "direct"], default="webhook"),
    Validator("REPLY_WEBHOOK_URL", must_exist=True, when=Validator("REPLY_MODE", eq="webhook")),
    Validator("REPLY_FUNCTION_URL", must_exist=True, when=Validator("REPLY_MODE", eq="direct")),
    Validator("BRIDGE_URL", must_exist=True),
    Validator("RECONNECT_DELAY_SECONDS", gt=0, default=3.0),
    Validator("MAX_RECONNECT_ATTEMPTS", gte=0, default=0),
)


def validate_settings():
    """Validate all settings on startup."""
    settings.validators.validate()
