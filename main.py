# chatlink - Terminal Chat Client
# Connects to the chat WebSocket and relays stdin lines as chat messages

"""
chatlink terminal client

Wires a ChatConnector to the terminal:
stdin lines -> ChatMessage -> WebSocket
WebSocket frames -> printed chat lines / ban notices

Commands:
- /retry   reconnect now (also after automatic retries are exhausted)
- /stats   print connector statistics
- /quit    disconnect and exit

Configuration: config/config.yaml and config/secrets.env
(CHAT_WS_URL, CHAT_ORIGIN, CHAT_ACCESS_TOKEN, CHAT_NICKNAME, CHAT_ROOM_ID).
"""

import asyncio
import signal
import sys
import threading
from typing import Optional

from chatlink.connection.callbacks import ChatCallbacks
from chatlink.connection.chat_connector import ChatConnector
from chatlink.connection.errors import (
    ChatConnectorError,
    ModerationNotification,
    NotConnectedError,
    RetryExhaustedError,
)
from chatlink.processors.chat_models import ChatMessage
from chatlink.utils.config import ConnectorSettings, load_config, validate_config
from chatlink.utils.logger import attach_file_handler, set_level, setup_logger

# Global flag for shutdown
shutdown_event: Optional[asyncio.Event] = None
_main_loop: Optional[asyncio.AbstractEventLoop] = None

class ChatTerminal:
    """
    Main application class - one chat session on the terminal
    """

    def __init__(self, config: dict):
        """Initialize connector and session settings from config"""
        self.config = config
        self.logger = setup_logger("ChatTerminal", config['logging'].get('level') or 'INFO')

        chat_config = config.get('chat', {})
        self.room_id = chat_config.get('room_id', 'public')
        self.nickname = chat_config.get('nickname') or 'guest'

        self.settings = ConnectorSettings.from_config(config)
        self.connector = ChatConnector.from_settings(self.settings)

        self._lines: asyncio.Queue = asyncio.Queue()

    # ------------------------------------------------------------------
    # Connector callbacks
    # ------------------------------------------------------------------

    async def on_connect(self):
        self.logger.info(f"🟢 Connected as {self.nickname} (room: {self.room_id})")

    async def on_disconnect(self):
        self.logger.info("🔌 Disconnected")

    async def on_message(self, data: dict):
        sender = data.get('sender', '?')
        text = data.get('message', data.get('content', ''))
        print(f"[{data.get('roomId', self.room_id)}] {sender}: {text}", flush=True)

    async def on_error(self, error: Exception):
        if isinstance(error, RetryExhaustedError):
            self.logger.error(f"❌ {error}")
            self.logger.info("Type /retry to reconnect")
        elif isinstance(error, ModerationNotification):
            self.logger.warning(f"⚠️ {error}")
        else:
            self.logger.error(f"❌ Connection error: {error}")

    async def on_ban_notification(self, data: dict):
        print(f"⛔ {data.get('error')}", flush=True)

    # ------------------------------------------------------------------
    # Terminal input
    # ------------------------------------------------------------------

    def _start_stdin_reader(self):
        """Read stdin on a daemon thread and hand lines to the event loop"""
        loop = asyncio.get_running_loop()

        def reader():
            for line in sys.stdin:
                loop.call_soon_threadsafe(self._lines.put_nowait, line.rstrip("\n"))
            loop.call_soon_threadsafe(self._lines.put_nowait, None)

        threading.Thread(target=reader, daemon=True, name="stdin-reader").start()

    async def handle_line(self, line: str) -> bool:
        """
        Handle one input line

        Returns:
            False when the session should end
        """
        line = line.strip()
        if not line:
            return True

        if line == "/quit":
            return False
        if line == "/retry":
            await self.connector.retry_connection()
            return True
        if line == "/stats":
            self.logger.info(f"📊 {self.connector.get_stats()}")
            return True

        message = ChatMessage(room_id=self.room_id, sender=self.nickname, message=line)
        try:
            await self.connector.send_message(message)
        except NotConnectedError:
            self.logger.warning("Not connected - message not sent (type /retry to reconnect)")
        except ChatConnectorError as e:
            self.logger.error(f"Send failed: {e}")
        return True

    async def input_loop(self):
        """Background task: relay stdin lines until EOF or /quit"""
        while not shutdown_event.is_set():
            line = await self._lines.get()
            if line is None or not await self.handle_line(line):
                shutdown_event.set()
                return

    async def run(self):
        """Run the chat session until shutdown"""
        self.logger.info("=" * 60)
        self.logger.info(f"💬 chatlink - {self.settings.url}")
        self.logger.info("=" * 60)

        callbacks = ChatCallbacks(
            on_message=self.on_message,
            on_connect=self.on_connect,
            on_disconnect=self.on_disconnect,
            on_error=self.on_error,
            on_ban_notification=self.on_ban_notification,
        )
        await self.connector.connect(callbacks, identity=self.nickname)

        self._start_stdin_reader()
        input_task = asyncio.create_task(self.input_loop())
        self.logger.info("Type a message and press Enter (/retry, /stats, /quit)")

        await shutdown_event.wait()

        self.logger.info("Shutting down...")
        input_task.cancel()
        await asyncio.gather(input_task, return_exceptions=True)
        await self.connector.disconnect()
        self.logger.info("✅ Shutdown complete")

def handle_shutdown(signum=None, frame=None):
    """Handle shutdown signals"""
    print("\n🛑 Received shutdown signal")
    if shutdown_event is not None and _main_loop is not None:
        _main_loop.call_soon_threadsafe(shutdown_event.set)

async def main():
    """Main entry point"""
    global shutdown_event, _main_loop
    shutdown_event = asyncio.Event()
    _main_loop = asyncio.get_running_loop()

    logger = setup_logger("Main", "INFO")

    try:
        logger.info("Loading configuration...")
        config = load_config()

        is_valid, errors = validate_config(config)
        if not is_valid:
            logger.error("❌ Configuration validation failed:")
            for error in errors:
                logger.error(f"  - {error}")
            return

        # Component loggers follow logging.level (CHAT_LOG_LEVEL)
        set_level(config['logging'].get('level') or 'INFO')

        app = ChatTerminal(config)
        if config['logging'].get('file'):
            attach_file_handler(config['logging']['file'])

        await app.run()

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise

if __name__ == "__main__":
    # Setup signal handlers
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
