"""Tool framework — import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
from schoolbell.tools import reminder_tools  # noqa: F401
from schoolbell.tools.registry import registry

__all__ = ["registry"]
