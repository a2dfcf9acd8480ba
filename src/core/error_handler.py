"""
Error Handler
Keeps long-running workers alive when a single call fails.
"""

import logging
from typing import Optional, Callable


class ErrorHandler:
    """Error handling with per-function failure counts."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize error handler."""
        self.logger = logger or logging.getLogger(__name__)
        self.error_counts = {}

    def safe_execute(self, func: Callable, *args, default=None, **kwargs):
        """
        Safely execute a function with error handling.

        Args:
            func: Function to execute
            *args: Function arguments
            default: Default return value on error
            **kwargs: Function keyword arguments

        Returns:
            Function result or default value
        """
        func_name = getattr(func, '__name__', repr(func))
        try:
            return func(*args, **kwargs)
        except Exception as e:
            self.logger.error(f"Error in {func_name}: {e}")
            self.error_counts[func_name] = self.error_counts.get(func_name, 0) + 1
            return default

    def get_error_stats(self):
        """Get error statistics."""
        return self.error_counts.copy()

    def total_errors(self) -> int:
        return sum(self.error_counts.values())
