"""Helper session lifecycle management."""

from officehours.runtime.session.manager import SessionLifecycleManager

__all__ = ["SessionLifecycleManager"]
