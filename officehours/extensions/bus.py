"""Extension event bus: fans lifecycle events out to registered observers."""

import inspect
import logging
from typing import Any

from officehours.extensions.base import LIFECYCLE_HOOKS, extension_name, implemented_hooks

logger = logging.getLogger(__name__)


class ExtensionBus:
    """Server-scoped registry of observers with fire-and-continue dispatch.

    Dispatch rules:
    - Callers dispatch only after their state change is complete.
    - Observers are called one at a time, in registration order.
    - Hooks an observer does not define are skipped.
    - A hook that raises is logged with the observer name and hook name; the
      remaining observers still receive the event and the caller never sees
      the error.

    Example:
        >>> bus = ExtensionBus(owner=server)
        >>> bus.register(ActivityTrackingExtension(store))
        >>> await bus.dispatch("on_student_join", queue.view(), waiter)
    """

    def __init__(self, owner: Any = None):
        """Initialize the bus.

        Args:
            owner: Object passed as the first argument of every hook
                (normally the AttendingServer).
        """
        self._owner = owner
        self._extensions: list[Any] = []

    @property
    def owner(self) -> Any:
        return self._owner

    def bind(self, owner: Any) -> None:
        """Set the object passed as first argument to every hook."""
        self._owner = owner

    @property
    def extensions(self) -> tuple[Any, ...]:
        """Registered observers in registration order."""
        return tuple(self._extensions)

    def __len__(self) -> int:
        return len(self._extensions)

    def __contains__(self, extension: object) -> bool:
        return any(existing is extension for existing in self._extensions)

    def register(self, extension: Any) -> None:
        """Register an observer. Registering the same object twice is a no-op.

        Args:
            extension: Any object implementing one or more lifecycle hooks.
        """
        name = extension_name(extension)
        if extension in self:
            logger.warning(f"Extension '{name}' is already registered")
            return

        hooks = implemented_hooks(extension)
        if not hooks:
            logger.warning(f"Extension '{name}' implements no lifecycle hooks")

        self._extensions.append(extension)
        logger.info(f"Registered extension '{name}' ({len(hooks)} hook(s))")

    def unregister(self, extension: Any) -> bool:
        """Remove an observer.

        Returns:
            True if the observer was registered.
        """
        for index, existing in enumerate(self._extensions):
            if existing is extension:
                del self._extensions[index]
                logger.info(f"Unregistered extension '{extension_name(extension)}'")
                return True
        return False

    async def dispatch(self, hook: str, *args: Any) -> int:
        """Deliver an event to every observer that implements ``hook``.

        Args:
            hook: Lifecycle hook name (see ``LIFECYCLE_HOOKS``).
            *args: Event payload, passed after the owner.

        Returns:
            Number of observers whose hook completed without error.

        Raises:
            ValueError: If ``hook`` is not a known lifecycle hook.
        """
        if hook not in LIFECYCLE_HOOKS:
            raise ValueError(f"Unknown lifecycle hook: {hook}")

        delivered = 0
        # Iterate over a copy; observers may register/unregister during dispatch
        for extension in tuple(self._extensions):
            handler = getattr(extension, hook, None)
            if handler is None or not callable(handler):
                continue

            try:
                result = handler(self._owner, *args)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Extension '{extension_name(extension)}' failed during {hook}: {e}",
                    exc_info=True,
                )

        return delivered
