import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Optional JSON file overriding the defaults below; env vars win over the file.
SETTINGS_PATH = os.environ.get("DAMAS_SETTINGS", "server_settings.json")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
HEARTBEAT_SECONDS_DEFAULT = 30.0
MATCH_HISTORY_LIMIT_DEFAULT = 100
BANNER = "Jogo de Damas - Servidor Multiplayer\n"


@dataclass
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    heartbeat_seconds: float = HEARTBEAT_SECONDS_DEFAULT
    match_history_limit: int = MATCH_HISTORY_LIMIT_DEFAULT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


_ENV_KEYS = {
    "host": "DAMAS_HOST",
    "port": "DAMAS_PORT",
    "heartbeat_seconds": "DAMAS_HEARTBEAT_SECONDS",
    "match_history_limit": "DAMAS_MATCH_HISTORY_LIMIT",
    "cors_origins": "DAMAS_CORS_ORIGINS",
    "log_level": "DAMAS_LOG_LEVEL",
}


def _coerce(name: str, value: Any) -> Any:
    if name == "port" or name == "match_history_limit":
        return int(value)
    if name == "heartbeat_seconds":
        return float(value)
    if name == "cors_origins":
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return [str(v) for v in value]
    if name == "log_level":
        return str(value).upper()
    return str(value)


def _read_settings_file(path: str) -> Dict[str, Any]:
    if not path or not os.path.isfile(path):
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("[Config] Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("[Config] Settings file %s is not a JSON object", path)
        return {}
    return data


def load_settings(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from defaults, then the JSON settings file, then DAMAS_* env vars."""
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}
    known = {f.name for f in fields(Settings)}
    for key, value in _read_settings_file(path or SETTINGS_PATH).items():
        if key in known:
            values[key] = value
    for name, var in _ENV_KEYS.items():
        if env.get(var):
            values[name] = env[var]
    settings = Settings()
    for name, value in values.items():
        try:
            setattr(settings, name, _coerce(name, value))
        except (TypeError, ValueError):
            logger.warning("[Config] Bad value for %s: %r (keeping %r)", name, value, getattr(settings, name))
    return settings
