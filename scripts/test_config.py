#!/usr/bin/env python3
# Test Configuration
# Usage: python scripts/test_config.py

"""
Configuration Test Script

Tests:
1. WebSocket URL derivation
2. YAML + dotenv + environment loading
3. Validation errors
4. ConnectorSettings (handshake headers)
5. Outbound chat message shape
"""

import json
import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path

import pytest
from pydantic import ValidationError

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatlink.processors.chat_models import ChatMessage
from chatlink.utils.config import (
    DEFAULT_CONFIG,
    DEFAULT_WS_URL,
    ConnectorSettings,
    load_config,
    resolve_ws_url,
    validate_config,
)
from chatlink.utils.logger import setup_logger

logger = setup_logger("TestConfig", "INFO")

CHAT_ENV_VARS = [
    "CHAT_WS_URL", "CHAT_ORIGIN", "CHAT_NICKNAME", "CHAT_ROOM_ID",
    "CHAT_LOG_LEVEL", "CHAT_ACCESS_TOKEN", "CHAT_CLIENT_IP",
]

@contextmanager
def clean_env(**values):
    """Clear CHAT_* variables, apply values, restore afterwards"""
    saved = {name: os.environ.get(name) for name in CHAT_ENV_VARS}
    for name in CHAT_ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(values)
    try:
        yield
    finally:
        for name, value in saved.items():
            if value is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = value

def test_resolve_ws_url():
    assert resolve_ws_url() == DEFAULT_WS_URL
    assert resolve_ws_url("wss://chat.example.com/socket", "https://other.com") == "wss://chat.example.com/socket"
    assert resolve_ws_url(origin="https://example.com") == "wss://example.com/ws"
    assert resolve_ws_url(origin="http://example.com:8000") == "ws://example.com:8000/ws"
    assert resolve_ws_url(origin="http://localhost:3000") == DEFAULT_WS_URL
    assert resolve_ws_url(origin="example.com", path="chat") == "ws://example.com/chat"

def test_load_defaults_without_files():
    with tempfile.TemporaryDirectory() as tmp, clean_env():
        tmp = Path(tmp)
        config = load_config(tmp / "missing.yaml", tmp / "missing.env")

        for section in DEFAULT_CONFIG:
            assert config[section] == DEFAULT_CONFIG[section]
        assert config["auth"] == {"access_token": "", "client_ip": ""}

def test_load_yaml_dotenv_and_env():
    with tempfile.TemporaryDirectory() as tmp, clean_env(CHAT_ROOM_ID="astronomy"):
        tmp = Path(tmp)
        config_path = tmp / "config.yaml"
        env_path = tmp / "secrets.env"

        config_path.write_text(
            "websocket:\n"
            "  origin: https://example.com\n"
            "reconnect:\n"
            "  max_retries: 5\n"
            "chat:\n"
            "  room_id: public\n",
            encoding="utf-8",
        )
        env_path.write_text("CHAT_ACCESS_TOKEN=secret-token\nCHAT_NICKNAME=andromeda\n", encoding="utf-8")

        config = load_config(config_path, env_path)

        # YAML merged over defaults
        assert config["reconnect"]["max_retries"] == 5
        assert config["reconnect"]["base_delay"] == DEFAULT_CONFIG["reconnect"]["base_delay"]
        assert config["websocket"]["origin"] == "https://example.com"
        # Environment beats YAML
        assert config["chat"]["room_id"] == "astronomy"
        # dotenv values
        assert config["chat"]["nickname"] == "andromeda"
        assert config["auth"]["access_token"] == "secret-token"

def test_validate_config():
    with tempfile.TemporaryDirectory() as tmp, clean_env():
        tmp = Path(tmp)
        config = load_config(tmp / "missing.yaml", tmp / "missing.env")

    is_valid, errors = validate_config(config)
    assert is_valid
    assert errors == []

    config["heartbeat"]["interval"] = 0
    config["reconnect"]["max_retries"] = -1
    config["reconnect"]["base_delay"] = 60
    config["websocket"]["url"] = "http://example.com/ws"

    is_valid, errors = validate_config(config)
    assert not is_valid
    assert len(errors) == 4
    assert any("heartbeat.interval" in error for error in errors)
    assert any("max_retries" in error for error in errors)
    assert any("must not exceed" in error for error in errors)
    assert any("ws://" in error for error in errors)

def test_connector_settings():
    config = {
        "websocket": {"url": None, "origin": "https://example.com", "path": "/ws",
                      "connect_timeout": 7, "close_timeout": 2},
        "heartbeat": {"interval": 20, "max_missed": 4},
        "reconnect": {"max_retries": 6, "base_delay": 2, "max_delay": 12},
        "auth": {"access_token": "abc", "client_ip": "203.0.113.9"},
    }
    settings = ConnectorSettings.from_config(config)

    assert settings.url == "wss://example.com/ws"
    assert settings.max_retries == 6
    assert settings.base_delay == 2.0
    assert settings.max_delay == 12.0
    assert settings.heartbeat_interval == 20.0
    assert settings.max_missed_heartbeats == 4
    assert settings.connect_timeout == 7.0
    assert settings.close_timeout == 2.0
    assert settings.headers == {"Cookie": "accessToken=abc", "X-Client-IP": "203.0.113.9"}

    # No credentials, no headers
    assert ConnectorSettings.from_config({}).headers == {}
    assert ConnectorSettings.from_config({}).url == DEFAULT_WS_URL

def test_null_settings_use_defaults():
    with tempfile.TemporaryDirectory() as tmp, clean_env():
        tmp = Path(tmp)
        config_path = tmp / "config.yaml"
        config_path.write_text(
            "websocket:\n"
            "  connect_timeout: null\n"
            "  close_timeout: null\n"
            "reconnect:\n"
            "  max_retries: null\n"
            "  base_delay: null\n"
            "heartbeat:\n"
            "  interval: null\n",
            encoding="utf-8",
        )
        config = load_config(config_path, tmp / "missing.env")

    is_valid, errors = validate_config(config)
    assert is_valid, errors

    settings = ConnectorSettings.from_config(config)
    # null connect_timeout disables the limit, other nulls keep the defaults
    assert settings.connect_timeout is None
    assert settings.close_timeout == 5.0
    assert settings.max_retries == 3
    assert settings.base_delay == 3.0
    assert settings.heartbeat_interval == 25.0

    # Absent keys keep the default limit
    assert ConnectorSettings.from_config({}).connect_timeout == 10.0

def test_invalid_log_level_rejected():
    config = {"logging": {"level": "LOUD"}}
    is_valid, errors = validate_config(config)
    assert not is_valid
    assert any("logging.level" in error for error in errors)

    assert validate_config({"logging": {"level": "debug"}}) == (True, [])

def test_chat_message_wire_shape():
    message = ChatMessage(room_id="public", sender="andromeda", message="hello")
    assert json.loads(message.to_wire()) == {"roomId": "public", "sender": "andromeda", "message": "hello"}

    # Wire name accepted on input too
    assert ChatMessage(roomId="public", sender="a", message="b").room_id == "public"

    with pytest.raises(ValidationError):
        ChatMessage(sender="a", message="b")

def main():
    """Run all tests"""
    logger.info("\n" + "=" * 60)
    logger.info("🧪 chatlink - Configuration Tests")
    logger.info("=" * 60)

    tests = [
        test_resolve_ws_url,
        test_load_defaults_without_files,
        test_load_yaml_dotenv_and_env,
        test_validate_config,
        test_connector_settings,
        test_null_settings_use_defaults,
        test_invalid_log_level_rejected,
        test_chat_message_wire_shape,
    ]

    failed = 0
    for test in tests:
        try:
            test()
            logger.info(f"✅ {test.__name__}")
        except Exception as e:
            failed += 1
            logger.error(f"❌ {test.__name__}: {e!r}")

    logger.info("=" * 60)
    if failed:
        logger.error(f"❌ {failed}/{len(tests)} tests failed")
        sys.exit(1)
    logger.info(f"✅ ALL {len(tests)} TESTS PASSED")

if __name__ == "__main__":
    main()
