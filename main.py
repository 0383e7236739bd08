"""
Replay runner for the fall detection engine.

Feeds pose frames from a JSON Lines file (one frame payload per line) through
the engine in the main thread, while a separate thread runs the async
notification dispatch in its own event loop.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
import threading
import time
from pathlib import Path

from fallwatch.config import get_settings
from fallwatch.models import PoseFrame
from fallwatch.service import build_service


def setup_logging(settings):
    """Setup logging configuration."""
    log_file = settings.LOG_DIR / "fall_detection.log"

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_file), logging.StreamHandler(sys.stdout)],
    )


logger = logging.getLogger(__name__)


class AsyncEventProcessor:
    """Runs event dispatch in a separate thread with its own event loop."""

    def __init__(self, event_manager):
        self.event_manager = event_manager
        self.loop = None
        self.thread = None

    def start(self):
        """Start the async processor in a separate thread."""
        self.thread = threading.Thread(target=self._run_event_loop, daemon=False)
        self.thread.start()
        logger.info("Async event processor thread started")

    def _run_event_loop(self):
        """Run the event loop in thread."""
        # Create new event loop for this thread
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        try:
            self.loop.run_until_complete(self._consume())
        except Exception as e:
            logger.error(f"Event processor error: {e}", exc_info=True)
        finally:
            self.loop.close()

    async def _consume(self):
        try:
            await self.event_manager.process_events()
            # Drain what was queued after the stop request
            await self.event_manager.stop()
        finally:
            # The HTTP session belongs to this loop, close it here
            close = getattr(self.event_manager.notifier, "close", None)
            if close is not None:
                await close()

    def stop(self):
        """Stop the event processor and wait for queued alerts."""
        self.event_manager.running = False

        if self.thread:
            self.thread.join(timeout=30)
            logger.info("Async event processor thread stopped")


class ReplayRunner:
    """
    Replays recorded pose streams through the engine.

    Frames are processed in file order; with realtime pacing the gaps between
    frame timestamps are reproduced.
    """

    def __init__(self, input_path: Path, realtime: bool = False):
        """Initialize system components."""
        # Load configuration
        self.settings = get_settings()
        setup_logging(self.settings)

        logger.info("=" * 80)
        logger.info("Fall Detection Engine - Replay Mode")
        logger.info("=" * 80)

        # Log configuration
        self.settings.log_config()

        if not input_path.exists():
            logger.error(f"Input file not found: {input_path}")
            sys.exit(1)

        self.input_path = input_path
        self.realtime = realtime
        self.service = build_service(self.settings)

        # Background processor
        self.async_processor = None
        self.running = False
        self.frames_replayed = 0
        self.frames_skipped = 0
        self.detections = 0

    def _read_frames(self):
        """Yield frames from the input file, skipping unparseable lines."""
        with open(self.input_path) as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield PoseFrame.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                    self.frames_skipped += 1
                    logger.warning(f"Skipping line {line_number}: {e}")

    def run(self):
        """Replay the input file in the main thread."""
        self.running = True

        try:
            # Start async event processor in separate thread
            logger.info("Starting async event processor...")
            self.async_processor = AsyncEventProcessor(self.service.event_manager)
            self.async_processor.start()

            logger.info(f"Replaying {self.input_path} (Ctrl+C to stop)")
            previous_ts = None
            last_eviction = time.monotonic()

            for frame in self._read_frames():
                if not self.running:
                    break

                if self.realtime and previous_ts is not None:
                    gap = frame.timestamp - previous_ts
                    if 0 < gap < 5:
                        time.sleep(gap)
                previous_ts = frame.timestamp

                result = self.service.process_frame(frame)
                self.frames_replayed += 1

                if result.fall_detected:
                    self.detections += 1
                    logger.warning(
                        f"FALL DETECTED user={frame.user_id} event={result.event_id} "
                        f"severity={result.severity} confidence={result.confidence:.2f}"
                    )

                if time.monotonic() - last_eviction > 60:
                    self.service.evict_idle_buffers()
                    last_eviction = time.monotonic()

        except KeyboardInterrupt:
            logger.info("Shutdown requested by user")
        except Exception as e:
            logger.error(f"Error during execution: {e}", exc_info=True)
        finally:
            self.shutdown()

    def shutdown(self):
        """Graceful shutdown of all components."""
        if not self.running:
            return

        logger.info("=" * 80)
        logger.info("Shutting down engine...")
        logger.info("=" * 80)

        self.running = False

        # Stop async processor
        if self.async_processor:
            logger.info("Stopping async event processor...")
            self.async_processor.stop()
            self.service.event_manager.log_statistics()

        logger.info(
            f"Frames replayed: {self.frames_replayed}, skipped: {self.frames_skipped}, "
            f"detections: {self.detections}"
        )
        logger.info(f"Final buffer state: {self.service.store.window_store}")

        logger.info("=" * 80)
        logger.info("Shutdown complete")
        logger.info("=" * 80)


def main():
    """Main entry point for replay mode."""
    parser = argparse.ArgumentParser(description="Replay pose frames through the fall detector")
    parser.add_argument("input", type=Path, help="JSON Lines file with one pose frame per line")
    parser.add_argument(
        "--realtime", action="store_true", help="Reproduce the gaps between frame timestamps"
    )
    args = parser.parse_args()

    runner = ReplayRunner(args.input, realtime=args.realtime)

    # Setup signal handlers for graceful shutdown
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        runner.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    # Run replay
    try:
        runner.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
