"""nettap command modules.

Command functions are registered via @app.command when their modules are imported.
"""

from nettap.commands import capture, launch

__all__ = ["capture", "launch"]
