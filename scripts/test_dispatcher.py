#!/usr/bin/env python3
# Test Message Dispatcher
# Usage: python scripts/test_dispatcher.py

"""
Message Dispatcher Test Script

Tests:
1. Frame classification (pong / moderation / message)
2. Malformed frame handling
3. Routing to callbacks
4. Statistics

Uses mock frames (no server required)
"""

import asyncio
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatlink.connection.callbacks import ChatCallbacks
from chatlink.connection.errors import ModerationNotification, ProtocolParseError
from chatlink.processors.message_dispatcher import FrameKind, MessageDispatcher
from chatlink.utils.logger import setup_logger

logger = setup_logger("TestDispatcher", "INFO")

# Mock frames
MOCK_CHAT_FRAME = json.dumps({
    "roomId": "public",
    "sender": "andromeda",
    "message": "Saturn is visible tonight 🪐",
    "timestamp": "2025-01-01T21:00:00"
})

MOCK_PONG_FRAME = json.dumps({"type": "pong"})

MOCK_BAN_FRAME = json.dumps({"error": "Chat is restricted for this account."})

INVALID_JSON = "{ this is not valid json"

def collecting_callbacks(events: list, with_ban_handler: bool = True) -> ChatCallbacks:
    return ChatCallbacks(
        on_message=lambda payload: events.append(("message", payload)),
        on_connect=lambda: events.append(("connect", None)),
        on_disconnect=lambda: events.append(("disconnect", None)),
        on_error=lambda error: events.append(("error", error)),
        on_ban_notification=(
            (lambda payload: events.append(("ban", payload))) if with_ban_handler else None
        ),
    )

def test_classify_frames():
    dispatcher = MessageDispatcher()

    assert dispatcher.classify(MOCK_PONG_FRAME).kind is FrameKind.PONG
    assert dispatcher.classify(MOCK_BAN_FRAME).kind is FrameKind.MODERATION
    assert dispatcher.classify(MOCK_CHAT_FRAME).kind is FrameKind.MESSAGE

    # An empty error is not a moderation notice; other "type" values are messages
    assert dispatcher.classify(json.dumps({"error": "", "message": "x"})).kind is FrameKind.MESSAGE
    assert dispatcher.classify(json.dumps({"type": "ping"})).kind is FrameKind.MESSAGE

    # Objects and arrays count even when empty
    for error in ({}, [], "banned", 1, {"reason": "spam"}):
        assert dispatcher.classify(json.dumps({"error": error})).kind is FrameKind.MODERATION
    for error in (None, False, 0, ""):
        assert dispatcher.classify(json.dumps({"error": error})).kind is FrameKind.MESSAGE
    assert dispatcher.classify('{"error": NaN}').kind is FrameKind.MESSAGE

    # Binary frames carrying JSON are accepted
    assert dispatcher.classify(MOCK_CHAT_FRAME.encode("utf-8")).kind is FrameKind.MESSAGE

def test_malformed_frames_return_none():
    dispatcher = MessageDispatcher()

    assert dispatcher.classify(INVALID_JSON) is None
    assert dispatcher.classify("42") is None
    assert dispatcher.classify('["a", "b"]') is None
    assert dispatcher.classify(b"\xff\xfe") is None
    assert dispatcher.get_stats()["parse_errors"] == 4

    with pytest.raises(ProtocolParseError):
        dispatcher.parse(INVALID_JSON)

def test_message_forwarded_verbatim():
    async def scenario():
        events = []
        dispatcher = MessageDispatcher()
        frame = await dispatcher.dispatch(MOCK_CHAT_FRAME, collecting_callbacks(events))

        assert frame.kind is FrameKind.MESSAGE
        assert events == [("message", json.loads(MOCK_CHAT_FRAME))]

    asyncio.run(scenario())

def test_pong_goes_to_heartbeat_only():
    async def scenario():
        events, pongs = [], []
        dispatcher = MessageDispatcher(on_pong=lambda: pongs.append(True))
        await dispatcher.dispatch(MOCK_PONG_FRAME, collecting_callbacks(events))

        assert pongs == [True]
        assert events == []

    asyncio.run(scenario())

def test_moderation_routing():
    async def scenario():
        dispatcher = MessageDispatcher()

        events = []
        await dispatcher.dispatch(MOCK_BAN_FRAME, collecting_callbacks(events))
        assert events == [("ban", json.loads(MOCK_BAN_FRAME))]

        events = []
        await dispatcher.dispatch(MOCK_BAN_FRAME, collecting_callbacks(events, with_ban_handler=False))
        assert len(events) == 1
        name, error = events[0]
        assert name == "error"
        assert isinstance(error, ModerationNotification)
        assert str(error) == "Chat is restricted for this account."

    asyncio.run(scenario())

def test_malformed_frame_reaches_no_callback():
    async def scenario():
        events = []
        dispatcher = MessageDispatcher()
        assert await dispatcher.dispatch(INVALID_JSON, collecting_callbacks(events)) is None
        assert events == []

    asyncio.run(scenario())

def test_dispatch_without_callbacks():
    async def scenario():
        dispatcher = MessageDispatcher()
        frame = await dispatcher.dispatch(MOCK_CHAT_FRAME, None)
        assert frame.kind is FrameKind.MESSAGE

    asyncio.run(scenario())

def test_statistics():
    async def scenario():
        dispatcher = MessageDispatcher()
        callbacks = collecting_callbacks([])
        for raw in (MOCK_CHAT_FRAME, MOCK_CHAT_FRAME, MOCK_PONG_FRAME, MOCK_BAN_FRAME, INVALID_JSON):
            await dispatcher.dispatch(raw, callbacks)

        stats = dispatcher.get_stats()
        assert stats == {
            "total_frames": 5,
            "pong": 1,
            "moderation": 1,
            "message": 2,
            "parse_errors": 1,
        }

    asyncio.run(scenario())

def main():
    """Run all tests"""
    logger.info("\n" + "=" * 60)
    logger.info("🧪 chatlink - Message Dispatcher Tests")
    logger.info("=" * 60)

    tests = [
        test_classify_frames,
        test_malformed_frames_return_none,
        test_message_forwarded_verbatim,
        test_pong_goes_to_heartbeat_only,
        test_moderation_routing,
        test_malformed_frame_reaches_no_callback,
        test_dispatch_without_callbacks,
        test_statistics,
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
