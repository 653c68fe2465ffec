"""
Main entry point for the repository policy controller.

Runs the controller loop against MANIFEST_FILE until SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
from typing import List, Optional

from config import get_config
from controller import Controller, build_reconciler
from events import EventBus
from plugins.registry import get_registry, register_builtin_plugins
from state import StateFile

logger = logging.getLogger(__name__)


class Application:
    """Main application that wires the store, reconciler and controller."""

    def __init__(self):
        self.config = get_config()
        self.controller: Optional[Controller] = None
        self.event_bus: Optional[EventBus] = None
        self.shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing repository policy controller")

        register_builtin_plugins()
        self.event_bus = EventBus()

        reconciler = await build_reconciler(
            self.config,
            registry=get_registry(),
            event_bus=self.event_bus,
            shutdown_event=self.shutdown_event,
        )

        ctrl_config = self.config.controller
        self.controller = Controller(
            reconciler=reconciler,
            state=StateFile(ctrl_config.state_file),
            config=ctrl_config,
            shutdown_event=self.shutdown_event,
        )
        logger.info(f"Using store plugin: {self.config.store.plugin}")

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info("Starting repository policy controller")

        subscription = await self.event_bus.subscribe()

        async def log_events():
            async for event in subscription:
                logger.info(
                    f"{event.event_type.value} {event.repository_name} "
                    f"{event.message}".rstrip()
                )

        self._tasks = [
            asyncio.create_task(
                self.controller.run(self.config.controller.manifest_file)
            ),
            asyncio.create_task(log_events()),
        ]

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping repository policy controller")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.event_bus:
            await self.event_bus.close()

        await get_registry().close()
        logger.info("Repository policy controller stopped")


async def main():
    """Main entry point."""
    config = get_config()
    logging.basicConfig(level=config.logging.level, format=config.logging.format)

    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
