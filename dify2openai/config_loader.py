"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("dify2openai")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

# Environment variable to override the config path
CONFIG_PATH_ENV = "DIFY2OPENAI_CONFIG"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_USER = "default-user"
DEFAULT_MODEL_NAME = "gpt-3.5-turbo"
DEFAULT_MAX_CONVERSATIONS = 10000
DEFAULT_SESSION_HEADER = "X-Session-Id"
DEFAULT_CORS_ORIGINS = ("*",)

_PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True)
class DifySettings:
    api_base: str
    api_key: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    default_user: str = DEFAULT_USER


@dataclass(frozen=True)
class ConversationSettings:
    max_entries: int = DEFAULT_MAX_CONVERSATIONS
    ttl_seconds: Optional[float] = None
    session_header: str = DEFAULT_SESSION_HEADER


@dataclass(frozen=True)
class ProxySettings:
    dify: DifySettings
    conversations: ConversationSettings
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    model_name: str = DEFAULT_MODEL_NAME
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to DIFY2OPENAI_CONFIG,
              or configs/config_default.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.
    """
    if path is None:
        path = os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)

    logger.info(f"Loading configuration from {config_path}")

    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(
    obj: Any, env_values: Optional[Mapping[str, str]] = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports ``${VAR_NAME}`` and ``$VAR_NAME``. Values from the .env file
    win over the process environment. Unset variables leave the literal
    placeholder in place so ``load_settings`` can report them.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"Check your .env file or export it in your shell."
                )
                return match.group(0)
            return value

        return _PLACEHOLDER_PATTERN.sub(replace_var, obj)
    return obj


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _to_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_origins(value: Any) -> tuple[str, ...]:
    """Accept a list or a comma-separated string; an empty list disables CORS."""
    if value is None:
        return DEFAULT_CORS_ORIGINS
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        logger.warning(f"Ignoring invalid cors_origins setting: {value!r}")
        return DEFAULT_CORS_ORIGINS
    return tuple(str(origin).strip() for origin in value if str(origin).strip())


def _require(value: Any, name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ConfigurationError(f"Missing required setting: {name}")
    if _PLACEHOLDER_PATTERN.search(text):
        raise ConfigurationError(
            f"Setting {name} references an unset environment variable ({text})"
        )
    return text


def load_settings(config: Mapping[str, Any]) -> ProxySettings:
    """Validate a raw config mapping into typed settings.

    Environment variables DIFY2OPENAI_HOST and DIFY2OPENAI_PORT (or PORT)
    take priority over the config file for the bind address.
    DIFY2OPENAI_CORS_ORIGINS (comma separated) overrides the allowed origins.

    Raises:
        ConfigurationError: If the Dify base URL or API key is missing.
    """
    dify_cfg = _section(config, "dify_settings")
    proxy_cfg = _section(config, "proxy_settings")
    server_cfg = _section(proxy_cfg, "server")
    conv_cfg = _section(config, "conversation_settings")

    request_timeout = _to_float(dify_cfg.get("request_timeout"), DEFAULT_REQUEST_TIMEOUT)
    if not request_timeout or request_timeout <= 0:
        request_timeout = DEFAULT_REQUEST_TIMEOUT

    dify = DifySettings(
        api_base=_require(dify_cfg.get("api_base"), "dify_settings.api_base"),
        api_key=_require(dify_cfg.get("api_key"), "dify_settings.api_key"),
        request_timeout=request_timeout,
        default_user=str(dify_cfg.get("default_user") or DEFAULT_USER),
    )

    ttl_seconds = _to_float(conv_cfg.get("ttl_seconds"), None)
    if ttl_seconds is not None and ttl_seconds <= 0:
        ttl_seconds = None
    conversations = ConversationSettings(
        max_entries=max(0, _to_int(conv_cfg.get("max_entries"), DEFAULT_MAX_CONVERSATIONS)),
        ttl_seconds=ttl_seconds,
        session_header=str(conv_cfg.get("session_header") or DEFAULT_SESSION_HEADER),
    )

    host = os.getenv("DIFY2OPENAI_HOST") or str(server_cfg.get("host") or DEFAULT_HOST)
    port_env = os.getenv("DIFY2OPENAI_PORT") or os.getenv("PORT")
    port = _to_int(port_env, 0) if port_env is not None else 0
    if not port:
        port = _to_int(server_cfg.get("port"), DEFAULT_PORT)

    return ProxySettings(
        dify=dify,
        conversations=conversations,
        host=host,
        port=port,
        model_name=str(proxy_cfg.get("model_name") or DEFAULT_MODEL_NAME),
        log_level=str(proxy_cfg.get("log_level") or "INFO"),
        cors_origins=_parse_origins(
            os.getenv("DIFY2OPENAI_CORS_ORIGINS", proxy_cfg.get("cors_origins"))
        ),
    )
