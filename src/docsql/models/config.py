import os
from collections.abc import Mapping
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from docsql.errors import ValidationError
from docsql.models.base import ensure_non_empty_text, is_variable_name_like

DEFAULT_HOST = "localhost"
DEFAULT_PORT = "3306"

ENV_HOST = "MY_SQL_SERVER"
ENV_PORT = "MY_SQL_SERVER_PORT"
ENV_DATABASE = "MY_SQL_SERVER_DB"
ENV_USER = "MY_SQL_USER"
ENV_PASSWORD = "MY_SQL_PASSWORD"


class ConnectionConfig(BaseModel):
    """Settings for one MySQL connection. Every field is required."""

    host: str
    port: int = Field(gt=0, lt=65536)
    user: str
    password: str
    database: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("host", "user")
    @classmethod
    def _ensure_non_empty(cls, value: str, info: pydantic.ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")

    @field_validator("database")
    @classmethod
    def _validate_database(cls, value: str) -> str:
        if not is_variable_name_like(value):
            raise ValueError("database must be a plain identifier")
        return value

    @classmethod
    def coerce(cls, config: Any) -> "ConnectionConfig":
        """Build a config from a model or mapping, naming the first bad field."""
        if isinstance(config, cls):
            return config
        if not isinstance(config, Mapping):
            raise ValidationError("config", "Please provide valid config")
        try:
            return cls.model_validate(dict(config))
        except pydantic.ValidationError as exc:
            errors = exc.errors()
            field = str(errors[0]["loc"][0]) if errors and errors[0]["loc"] else "config"
            raise ValidationError(field, f"Please provide valid {field}") from exc

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ConnectionConfig":
        """Build a config from the ``MY_SQL_*`` environment variables."""
        return cls.coerce(load_config_from_env(environ))


def load_config_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str | None]:
    """Read connection settings from the ``MY_SQL_*`` environment variables.

    Host and port fall back to a local server. User, password and database are
    left as ``None`` when unset so ``DocumentStore.init`` reports them.
    """
    env = os.environ if environ is None else environ
    return {
        "host": env.get(ENV_HOST, DEFAULT_HOST),
        "port": env.get(ENV_PORT, DEFAULT_PORT),
        "user": env.get(ENV_USER),
        "password": env.get(ENV_PASSWORD),
        "database": env.get(ENV_DATABASE),
    }


__all__ = ["ConnectionConfig", "load_config_from_env"]
