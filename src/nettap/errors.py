"""nettap exceptions.

PUBLIC API:
  - NetTapError: Base exception for all nettap operations
  - BrowserConnectionError: Chrome could not be reached or attached
  - PersistenceError: A trace or summary file could not be written
  - AlreadyResolvedError: A response was attached to a resolved ledger entry
  - ConfigError: Invalid nettap.toml contents
"""


class NetTapError(Exception):
    """Base exception for all nettap operations."""

    pass


class BrowserConnectionError(NetTapError):
    """Raised when Chrome's debugging endpoint cannot be reached or attached."""

    pass


class PersistenceError(NetTapError):
    """Raised when a trace file cannot be written. Never retried."""

    pass


class AlreadyResolvedError(NetTapError):
    """Raised when attaching a response to an entry that already has one."""

    pass


class ConfigError(NetTapError):
    """Raised when nettap.toml holds values of the wrong shape."""

    pass


__all__ = ["NetTapError", "BrowserConnectionError", "PersistenceError", "AlreadyResolvedError", "ConfigError"]
