"""
Debounced autosave for the authoring tool.

Protocol:
- Every builder mutation restarts a debounce timer.
- When the timer fires, an autosave is issued unless one is already
  in flight (the request is dropped, not queued) or the metadata
  (name, key) is incomplete. Autosave only runs for definitions that
  already exist in storage.
- An explicit save() skips the debounce and runs immediately, even
  while an autosave is in flight.
- Each save carries a generation number. A response whose generation
  is older than the last applied one is discarded, so a slow autosave
  cannot overwrite the result of a later explicit save.
- close() cancels a pending timer; a request already sent is left to
  complete.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from formflow.authoring.builder import FormBuilder
from formflow.authoring.notifications import LoggingNotifier, NotificationKind, Notifier
from formflow.config import get_settings
from formflow.core.errors import PersistenceError, SchemaError, SchemaValidationUnavailable
from formflow.core.schema import FormDefinition, find_schema_problems

logger = logging.getLogger(__name__)

SaveOperation = Callable[[FormDefinition], Awaitable[FormDefinition | None]]
SchemaValidator = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class DebounceTimer:
    """Cancellable one-shot timer on the running asyncio loop.

    `start()` (re)arms the timer, so repeated calls within `delay`
    collapse into a single callback `delay` seconds after the last one.
    """

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    reset = start

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class Autosaver:
    """Persists a FormBuilder through an injected save operation.

    Args:
        builder: The builder to watch.
        save: Coroutine function storing a definition and returning the
            stored version (or None).
        notifier: Sink for user-facing notifications.
        delay: Quiet period before an autosave, in seconds. Defaults to
            FORMFLOW_AUTOSAVE_DELAY_SECONDS.
        validate_schema: Optional remote schema validator, used by
            explicit saves. When it is unavailable, local structural
            checks are used instead.
    """

    def __init__(
        self,
        builder: FormBuilder,
        save: SaveOperation,
        notifier: Notifier | None = None,
        delay: float | None = None,
        validate_schema: SchemaValidator | None = None,
    ):
        self.builder = builder
        self._save = save
        self._notifier = notifier or LoggingNotifier()
        self._validate_schema = validate_schema
        if delay is None:
            delay = get_settings().autosave_delay_seconds
        self._timer = DebounceTimer(delay, self._on_timer)

        self._generation = 0
        self._applied_generation = 0
        self._autosave_in_flight = False
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self.last_saved: FormDefinition | None = None

        self._unsubscribe = builder.subscribe(self._on_builder_change)

    @property
    def pending(self) -> bool:
        """True while the debounce timer is armed."""
        return self._timer.pending

    @property
    def in_flight(self) -> bool:
        return self._autosave_in_flight

    # -----------------------------------------------------------------
    # Triggering
    # -----------------------------------------------------------------

    def trigger(self) -> None:
        """Restart the debounce timer (edit mode only)."""
        if self._closed or not self.builder.is_edit_mode:
            return
        self._timer.start()

    def _on_builder_change(self, builder: FormBuilder, reason: str) -> None:
        self.trigger()

    def _on_timer(self) -> None:
        task = asyncio.ensure_future(self.autosave())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._on_autosave_done)

    def _on_autosave_done(self, task: asyncio.Task) -> None:
        # autosave() handles PersistenceError itself; anything else lands here
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(
            "Auto-save of form '%s' crashed: %s",
            self.builder.key,
            error,
            exc_info=error,
        )
        self._notifier.notify(NotificationKind.WARNING, "Auto-save failed")

    # -----------------------------------------------------------------
    # Saving
    # -----------------------------------------------------------------

    async def autosave(self) -> bool:
        """Run one autosave. Returns True if a save was stored.

        Failures are logged and reported as a warning; the next
        mutation schedules the next attempt.
        """
        if self._autosave_in_flight:
            logger.debug("Autosave already in flight; skipping")
            return False
        if not self.builder.metadata_valid():
            logger.debug("Autosave skipped: form name or key missing")
            return False

        self._autosave_in_flight = True
        generation = self._next_generation()
        definition = self.builder.to_definition()
        try:
            saved = await self._save(definition)
        except PersistenceError as e:
            logger.warning("Auto-save of form '%s' failed: %s", definition.key, e)
            self._notifier.notify(NotificationKind.WARNING, "Auto-save failed")
            return False
        finally:
            self._autosave_in_flight = False

        self._apply(generation, saved)
        logger.info("Form '%s' auto-saved (generation %d)", definition.key, generation)
        return True

    async def save(self) -> FormDefinition | None:
        """Save immediately, regardless of any autosave in flight.

        Raises:
            SchemaError: If the form name or key is missing.
            PersistenceError: If the save operation fails. The builder
                state is left untouched.
        """
        self._timer.cancel()

        if not self.builder.metadata_valid():
            self._notifier.notify(NotificationKind.ERROR, "Form name and key are required")
            raise SchemaError([p for p in self.builder.schema_problems() if p.startswith("Form ")])

        definition = self.builder.to_definition()

        problems = await self._check_schema(definition)
        if problems:
            self._notifier.notify(
                NotificationKind.WARNING,
                "Form has problems: " + "; ".join(problems),
            )

        generation = self._next_generation()
        try:
            saved = await self._save(definition)
        except PersistenceError as e:
            logger.error("Saving form '%s' failed: %s", definition.key, e)
            self._notifier.notify(NotificationKind.ERROR, "Failed to save form")
            raise

        self._apply(generation, saved)
        self._notifier.notify(NotificationKind.SUCCESS, "Form saved successfully!")
        return saved

    def close(self) -> None:
        """Stop autosaving. Requests already sent are not cancelled."""
        self._closed = True
        self._timer.cancel()
        self._unsubscribe()

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _apply(self, generation: int, saved: FormDefinition | None) -> None:
        if generation <= self._applied_generation:
            logger.info(
                "Discarding stale save response (generation %d, latest applied %d)",
                generation,
                self._applied_generation,
            )
            return
        self._applied_generation = generation
        if saved is not None:
            self.last_saved = saved
            self.builder.apply_saved(saved)

    async def _check_schema(self, definition: FormDefinition) -> list[str]:
        if self._validate_schema is None:
            return find_schema_problems(definition)

        try:
            result = await self._validate_schema(definition.to_payload())
        except SchemaValidationUnavailable as e:
            logger.info("Schema validation endpoint unavailable (%s); using local checks", e)
            return find_schema_problems(definition)

        if result.get("valid", False):
            return []
        return list(result.get("errors") or ["Schema is invalid"])
