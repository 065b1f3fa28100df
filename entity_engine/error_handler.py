"""
Error handling utilities for the membership console.
Provides the engine's exception types, user-friendly messages and the
blocking error screens.
"""

import streamlit as st
import logging
import traceback
from typing import Optional, Callable

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong."


class ErrorType:
    """Error type constants."""
    SCHEMA = "schema"
    REFERENCE = "reference"
    VALIDATION = "validation"
    SUBMISSION = "submission"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class EntityEngineError(Exception):
    """Base class for errors raised by the entity engine."""


class SchemaUnavailableError(EntityEngineError):
    """No metadata could be obtained for an entity from any source."""

    def __init__(self, entity_name: str, message: Optional[str] = None):
        self.entity_name = entity_name
        super().__init__(message or f"No metadata found for entity: {entity_name}")


class ApiError(EntityEngineError):
    """A backend request failed or was rejected."""

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message or GENERIC_ERROR_MESSAGE)


class ErrorHandler:
    """Error reporting for the console screens."""

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        show_details: bool = False
    ) -> None:
        """
        Log an error and show a user-friendly message.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants)
            user_message: Custom user-friendly message
            show_details: Whether to show technical details
        """
        logger.error(f"Error in {context}: {str(error)}", exc_info=True)

        if not user_message:
            user_message = ErrorHandler.get_user_friendly_message(error, error_type)

        st.error(user_message)

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {str(error)}")
                st.code(traceback.format_exc())

    @staticmethod
    def get_user_friendly_message(error: Exception, error_type: str) -> str:
        """Generate user-friendly error messages based on error type."""
        if isinstance(error, SchemaUnavailableError):
            return f"📋 Metadata unavailable for '{error.entity_name}'. This screen cannot be shown."
        if isinstance(error, ApiError):
            return f"🌐 {error}"

        error_messages = {
            ErrorType.SCHEMA: {
                KeyError: "📋 Required metadata is missing. Please verify the entity definition.",
                ValueError: "📋 Metadata contains invalid values. Please check the entity definition.",
                "default": "📋 Metadata could not be loaded."
            },
            ErrorType.VALIDATION: {
                ValueError: "✅ Data validation failed. Please check your input and try again.",
                "default": "✅ Validation error occurred. Please review your data and try again."
            },
            ErrorType.SUBMISSION: {
                "default": f"❌ {GENERIC_ERROR_MESSAGE}"
            },
            ErrorType.NETWORK: {
                ConnectionError: "🌐 Network connection error. Please check your connection.",
                TimeoutError: "⏱️ Request timed out. Please try again.",
                "default": "🌐 Network error occurred. Please check your connection and try again."
            },
            ErrorType.CONFIGURATION: {
                "default": "⚙️ Configuration error. Please check config.yaml."
            },
            ErrorType.SYSTEM: {
                ImportError: "💻 Required system component is missing. Please contact support.",
                "default": "💻 System error occurred. Please try again or contact support."
            }
        }

        error_type_messages = error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                return message

        return error_type_messages.get("default", "An unexpected error occurred.")

    @staticmethod
    def render_schema_error(message: str, on_close: Callable[[], None], key: str) -> None:
        """
        Blocking error state for a screen whose metadata could not be loaded.
        The only escape offered is Close.
        """
        st.error("**Failed to load form**")
        st.caption(message)
        st.button("Close", key=f"{key}_schema_error_close", on_click=on_close)


def handle_error(error: Exception, context: str, error_type: str = ErrorType.SYSTEM) -> None:
    """Convenience function for error handling."""
    ErrorHandler.handle_error(error, context, error_type)
