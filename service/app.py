"""
Service entry point.

Loads configuration, decodes both cue files, connects to the broker and runs
the event coordinator until SIGINT/SIGTERM closes the inbound channel.
"""
import argparse
import asyncio
import logging
import signal
from functools import partial
from typing import Optional, Sequence

from dotenv import load_dotenv

from config.base import ConfigurationError, DoorbellConfiguration
from core.channels import EventChannel
from core.coordinator import EventCoordinator
from core.cue_player import AudioLoadError, CuePlayer, load_audio_resource
from core.mqtt_adapter import BusConnectionError, ConnectionHooks, MessageAdapter
from core.notifier import NotificationSink

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s: %(message)s'


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="doorbell",
        description="Play a chime and post a webhook message when the doorbell button is pressed.",
    )
    parser.add_argument("--doslack", metavar="URL", default=None, help="webhook for Slack messages")
    parser.add_argument("--broker", default=None, help="MQTT broker host")
    parser.add_argument("--port", type=int, default=None, help="MQTT broker port")
    parser.add_argument(
        "--topic",
        dest="topics",
        action="append",
        default=None,
        help="topic to subscribe to (repeatable)",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    return parser.parse_args(argv)


async def run_service(
    config: DoorbellConfiguration,
    hooks: Optional[ConnectionHooks] = None,
    *,
    drain_timeout: float = 30.0,
) -> int:
    """
    Wire up and run the service.

    Returns:
        0 once the inbound channel has been closed

    Raises:
        AudioLoadError: a cue file cannot be decoded
        BusConnectionError: the broker is unreachable
    """
    loop = asyncio.get_running_loop()
    inbound = EventChannel(loop, name="inbound")
    completions = EventChannel(loop, name="completions")

    single_resource = await asyncio.to_thread(load_audio_resource, config.single_sound)
    double_resource = await asyncio.to_thread(load_audio_resource, config.double_sound)

    signal_done = partial(completions.put, None)
    single_player = CuePlayer(single_resource, signal_done, name="single")
    double_player = CuePlayer(double_resource, signal_done, name="double")

    notifier = NotificationSink(config.webhook_url)
    if not notifier.enabled:
        logger.info("No webhook configured, notifications disabled")

    coordinator = EventCoordinator(inbound, completions, single_player, double_player, notifier)
    adapter = MessageAdapter(config.mqtt, inbound, hooks)

    try:
        await adapter.start()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, adapter.close)
            except (NotImplementedError, RuntimeError):
                # no signal handlers outside the main thread or on Windows
                pass

        await coordinator.run()
        # shutdown only stops new presses; let a sounding cue and its webhook post finish
        await coordinator.drain(drain_timeout)
    finally:
        adapter.close()
        single_player.close()
        double_player.close()
        notifier.close()

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        config = DoorbellConfiguration.from_env(
            webhook_url=args.doslack,
            broker=args.broker,
            port=args.port,
            topics=args.topics,
            log_level=args.log_level,
        )
    except ConfigurationError as e:
        logging.basicConfig(format=LOG_FORMAT)
        logger.error("%s", e)
        return 1

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    try:
        return asyncio.run(run_service(config))
    except (AudioLoadError, BusConnectionError) as e:
        logger.error("Startup failed: %s", e)
        return 1
