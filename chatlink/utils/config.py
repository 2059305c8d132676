# Config - Configuration Loading
# config/config.yaml + config/secrets.env, overlaid by environment variables

"""
Config Module

Responsibilities:
- Load config/config.yaml (built-in defaults when missing)
- Load secrets from config/secrets.env
- Overlay environment variables
- Validate numeric settings
- Derive the WebSocket URL from an origin
"""

import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_WS_URL = "ws://localhost:8080/ws"

DEFAULT_CONFIG = {
    'websocket': {
        'url': None,
        'origin': None,
        'path': '/ws',
        'connect_timeout': 10,
        'close_timeout': 5
    },
    'heartbeat': {
        'interval': 25,
        'max_missed': 3
    },
    'reconnect': {
        'max_retries': 3,
        'base_delay': 3,
        'max_delay': 30
    },
    'chat': {
        'room_id': 'public',
        'nickname': None
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/chatlink.log'
    }
}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    'CHAT_WS_URL': ('websocket', 'url'),
    'CHAT_ORIGIN': ('websocket', 'origin'),
    'CHAT_NICKNAME': ('chat', 'nickname'),
    'CHAT_ROOM_ID': ('chat', 'room_id'),
    'CHAT_LOG_LEVEL': ('logging', 'level'),
}

def resolve_ws_url(explicit_url: Optional[str] = None, origin: Optional[str] = None, path: str = "/ws") -> str:
    """
    Work out the chat WebSocket URL

    An explicit URL always wins. Without an origin, or for a localhost
    origin, the local development server is used. Otherwise the origin's
    host is kept and https/http become wss/ws.

    Args:
        explicit_url: Configured URL (CHAT_WS_URL)
        origin: Site origin, e.g. "https://example.com"
        path: WebSocket endpoint path

    Returns:
        ws:// or wss:// URL
    """
    if explicit_url:
        return explicit_url
    if not origin:
        return DEFAULT_WS_URL

    parts = urlsplit(origin if "://" in origin else f"http://{origin}")
    if parts.hostname in (None, "localhost"):
        return DEFAULT_WS_URL

    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{scheme}://{parts.netloc}{path}"

def _merge(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base"""
    merged = deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged

def load_config(config_path: Optional[Path] = None, env_path: Optional[Path] = None) -> dict:
    """
    Load configuration from files and environment

    Args:
        config_path: YAML file (default: config/config.yaml)
        env_path: dotenv file (default: config/secrets.env)

    Returns:
        Config dict with every section of DEFAULT_CONFIG present
    """
    config_path = Path(config_path) if config_path else PROJECT_ROOT / "config" / "config.yaml"
    env_path = Path(env_path) if env_path else PROJECT_ROOT / "config" / "secrets.env"

    load_dotenv(env_path)

    if config_path.exists():
        with open(config_path, encoding='utf-8') as f:
            config = _merge(DEFAULT_CONFIG, yaml.safe_load(f) or {})
    else:
        config = deepcopy(DEFAULT_CONFIG)

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[section][key] = value

    # Secrets from environment only
    config['auth'] = {
        'access_token': os.getenv('CHAT_ACCESS_TOKEN', ''),
        'client_ip': os.getenv('CHAT_CLIENT_IP', '')
    }

    return config

def validate_config(config: dict) -> Tuple[bool, List[str]]:
    """
    Validate configuration values

    Args:
        config: Config dict from load_config()

    Returns:
        (is_valid, errors)
    """
    errors = []

    numeric_checks = [
        ('websocket.connect_timeout', config.get('websocket', {}).get('connect_timeout')),
        ('websocket.close_timeout', config.get('websocket', {}).get('close_timeout')),
        ('heartbeat.interval', config.get('heartbeat', {}).get('interval')),
        ('heartbeat.max_missed', config.get('heartbeat', {}).get('max_missed')),
        ('reconnect.base_delay', config.get('reconnect', {}).get('base_delay')),
        ('reconnect.max_delay', config.get('reconnect', {}).get('max_delay')),
    ]

    for key, value in numeric_checks:
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0):
            errors.append(f"Config error: {key} must be a positive number")

    max_retries = config.get('reconnect', {}).get('max_retries')
    if max_retries is not None and (isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0):
        errors.append("Config error: reconnect.max_retries must be a non-negative integer")

    reconnect = config.get('reconnect', {})
    base_delay, max_delay = reconnect.get('base_delay'), reconnect.get('max_delay')
    if (isinstance(base_delay, (int, float)) and isinstance(max_delay, (int, float))
            and base_delay > max_delay):
        errors.append("Config error: reconnect.base_delay must not exceed reconnect.max_delay")

    level = config.get('logging', {}).get('level')
    if level is not None and str(level).upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"Config error: logging.level {level!r} is not a valid log level")

    url = config.get('websocket', {}).get('url')
    if url and not str(url).startswith(("ws://", "wss://")):
        errors.append("Config error: websocket.url must start with ws:// or wss://")

    return (len(errors) == 0, errors)

def _setting(section: dict, key: str, default, cast):
    """Read a numeric setting; missing or null falls back to the default"""
    value = section.get(key)
    return cast(default if value is None else value)

@dataclass
class ConnectorSettings:
    """Settings consumed by ChatConnector.from_settings()"""
    url: str = DEFAULT_WS_URL
    max_retries: int = 3
    base_delay: float = 3.0
    max_delay: float = 30.0
    heartbeat_interval: float = 25.0
    max_missed_heartbeats: int = 3
    connect_timeout: Optional[float] = 10.0
    close_timeout: float = 5.0
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict) -> "ConnectorSettings":
        """Build settings from a load_config() dict"""
        websocket = config.get('websocket', {})
        heartbeat = config.get('heartbeat', {})
        reconnect = config.get('reconnect', {})
        auth = config.get('auth', {})

        # Session cookie travels with the handshake, as a browser would send it
        headers = {}
        if auth.get('access_token'):
            headers['Cookie'] = f"accessToken={auth['access_token']}"
        if auth.get('client_ip'):
            headers['X-Client-IP'] = auth['client_ip']

        # null connect_timeout means no limit
        connect_timeout = websocket.get('connect_timeout', 10)

        return cls(
            url=resolve_ws_url(websocket.get('url'), websocket.get('origin'), websocket.get('path') or '/ws'),
            max_retries=_setting(reconnect, 'max_retries', 3, int),
            base_delay=_setting(reconnect, 'base_delay', 3, float),
            max_delay=_setting(reconnect, 'max_delay', 30, float),
            heartbeat_interval=_setting(heartbeat, 'interval', 25, float),
            max_missed_heartbeats=_setting(heartbeat, 'max_missed', 3, int),
            connect_timeout=None if connect_timeout is None else float(connect_timeout),
            close_timeout=_setting(websocket, 'close_timeout', 5, float),
            headers=headers,
        )
