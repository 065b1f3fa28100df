"""
UI feedback utilities for the membership console.
Provides toast notifications and the adapter the engine uses to report outcomes.
"""

import streamlit as st
import time
import logging
from typing import Callable

logger = logging.getLogger(__name__)

_ICONS = {
    'success': '✅',
    'info': 'ℹ️',
    'warning': '⚠️',
    'error': '❌'
}


class Notify:
    """
    Toast-first notification helper.
    Prefers st.toast for non-blocking notifications and falls back to inline
    messages when a toast cannot be shown.

    Usage:
    Notify.success("Dealer created")
    Notify.error("Something went wrong.")
    Notify.once("Demo data in use", notification_type="info", key="demo_notice")
    """

    @staticmethod
    def _display_notification(message: str, notification_type: str = 'info') -> None:
        """Internal method to display notification based on type."""
        icon = _ICONS.get(notification_type, 'ℹ️')

        try:
            if hasattr(st, 'toast'):
                st.toast(message, icon=icon)
            else:
                placeholder = st.empty()
                Notify._inline(placeholder, f"{icon} {message}", notification_type)
                time.sleep(3)
                placeholder.empty()
        except Exception as e:
            logger.error(f"Error using st.toast: {e}", exc_info=True)
            Notify._inline(st, f"{icon} {message}", notification_type)

    @staticmethod
    def _inline(target, full_message: str, notification_type: str) -> None:
        if notification_type == 'success':
            target.success(full_message)
        elif notification_type == 'warning':
            target.warning(full_message)
        elif notification_type == 'error':
            target.error(full_message)
        else:
            target.info(full_message)

    @staticmethod
    def success(message: str) -> None:
        """Display a success notification."""
        Notify._display_notification(message, 'success')

    @staticmethod
    def info(message: str) -> None:
        """Display an info notification."""
        Notify._display_notification(message, 'info')

    @staticmethod
    def warn(message: str) -> None:
        """Display a warning notification."""
        Notify._display_notification(message, 'warning')

    @staticmethod
    def error(message: str) -> None:
        """Display an error notification."""
        Notify._display_notification(message, 'error')

    @staticmethod
    def once(message: str, notification_type: str = 'info', key: str = 'default_once') -> bool:
        """
        Display a notification only once per session.

        Returns:
            True if the notification was shown, False if it was shown before
        """
        session_key = f"notify_once_{key}"
        if st.session_state.get(session_key):
            return False
        st.session_state[session_key] = True
        Notify._display_notification(message, notification_type)
        return True


def notify_callback() -> Callable[[str, str], None]:
    """Adapt Notify to the engine's ``notify(message, level)`` contract."""
    handlers = {
        'success': Notify.success,
        'info': Notify.info,
        'warning': Notify.warn,
        'error': Notify.error,
    }

    def _notify(message: str, level: str = 'info') -> None:
        handlers.get(level, Notify.info)(message)

    return _notify
