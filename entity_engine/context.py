"""
Collaborators handed to the engine's components.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .api_client import ApiClient

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[str, str], None]


def log_notify(message: str, level: str = "info") -> None:
    """Notify callback for headless use: writes the message to the log."""
    logger.info(f"[{level}] {message}")


@dataclass
class EngineContext:
    """
    Explicit dependencies of the form engine, resolvers and tables.

    Attributes:
        api: Backend client; may be None when running purely on static tables
        notify: ``notify(message, level)`` callback, level one of
            success/info/warning/error
        use_mock: The api is backed by the in-process demo backend
    """
    api: Optional[ApiClient] = None
    notify: NotifyCallback = field(default=log_notify)
    use_mock: bool = False
