"""
Event coordinator.

One asyncio loop consumes two channels: raw bus messages from the message
adapter and completion pulses from the cue players. It owns the single
``playing`` flag, so at most one cue sounds at a time; presses that arrive
while a cue is sounding are dropped, not queued.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Set

from .channels import EventChannel
from .data_models import ButtonAction, DecodeError, DeviceEvent

logger = logging.getLogger(__name__)

# spawn(func, *args): run func(*args) concurrently, return nothing
Spawn = Callable[..., None]


def _payload_text(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return payload.decode("utf-8", errors="replace")
    return str(payload)


class EventCoordinator:
    """Turns button presses into cue playback and webhook notifications."""

    def __init__(
        self,
        inbound: EventChannel,
        completions: EventChannel,
        single_player,
        double_player,
        notifier=None,
        *,
        spawn: Optional[Spawn] = None,
    ) -> None:
        self.inbound = inbound
        self.completions = completions
        self._players: Dict[ButtonAction, Any] = {
            ButtonAction.SINGLE: single_player,
            ButtonAction.DOUBLE: double_player,
        }
        self._notifier = notifier
        self._spawn = spawn or self._spawn_thread
        self._playing = False
        self._tasks: Set[asyncio.Task] = set()
        self.finished = asyncio.Event()

    @property
    def playing(self) -> bool:
        """True while a cue started by this coordinator has not completed."""
        return self._playing

    async def run(self) -> None:
        """Process both channels until the inbound channel is closed."""
        message_get: Optional[asyncio.Task] = None
        completion_get: Optional[asyncio.Task] = None
        watch_completions = True

        try:
            while True:
                if message_get is None:
                    message_get = asyncio.create_task(self.inbound.get())
                if completion_get is None and watch_completions:
                    completion_get = asyncio.create_task(self.completions.get())

                waiting = {task for task in (message_get, completion_get) if task is not None}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if completion_get in done:
                    task, completion_get = completion_get, None
                    try:
                        task.result()
                    except asyncio.QueueShutDown:
                        logger.warning("completion channel closed")
                        watch_completions = False
                    else:
                        self.handle_completion()

                if message_get in done:
                    task, message_get = message_get, None
                    try:
                        raw = task.result()
                    except asyncio.QueueShutDown:
                        logger.info("done")
                        return
                    self.handle_message(raw)
        finally:
            # a getter still pending here never received an item
            for task in (message_get, completion_get):
                if task is not None:
                    task.cancel()
            self.finished.set()

    async def drain(self, timeout: float = 30.0) -> bool:
        """
        Wait for side effects still in flight after ``run()`` returned.

        Waits for spawned tasks and, if a cue is still sounding, for its
        completion signal. Call this before closing the players or the
        notifier.

        Returns:
            True if everything finished within *timeout* seconds
        """
        try:
            async with asyncio.timeout(timeout):
                while self._tasks:
                    await asyncio.gather(*list(self._tasks), return_exceptions=True)
                while self._playing:
                    await self.completions.get()
                    self.handle_completion()
        except TimeoutError:
            logger.warning("side effects still running after %.1fs, closing anyway", timeout)
            return False
        except asyncio.QueueShutDown:
            logger.warning("completion channel closed while a cue was playing")
            return False
        return True

    # ------------------------------------------------------------------
    def handle_message(self, raw: Any) -> None:
        """Decode one bus message and, when allowed, start a cue for it."""
        payload = getattr(raw, "payload", raw)
        logger.info("received: %s", _payload_text(payload))

        try:
            event = DeviceEvent.from_payload(payload)
        except DecodeError as exc:
            logger.warning("problem unpacking message: %s", exc)
            return

        action = event.button_action
        player = self._players.get(action) if action is not None else None
        if player is None:
            logger.info("ignoring message with action %r", event.action)
            return

        if self._playing:
            logger.info("Already playing, dropping %s press", action.value)
            return

        self._playing = True
        self._spawn(player.play)
        if self._notifier is not None and self._notifier.enabled:
            self._spawn(self._notifier.notify, event.describe())

    def handle_completion(self) -> None:
        """A cue finished rendering; the speaker is free again."""
        logger.info("finished dinging")
        self._playing = False

    # ------------------------------------------------------------------
    def _spawn_thread(self, func: Callable[..., Any], *args: Any) -> None:
        task = asyncio.create_task(asyncio.to_thread(func, *args))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Side effect failed: %s", exc)
