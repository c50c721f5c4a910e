"""Tool registry for the chat assistant's reminder tools."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from schoolbell.errors import SchoolBellError
from schoolbell.tools.base import ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    ToolHandler = Callable[..., Awaitable[ToolResult]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDef:
    """A registered tool: its handler and the model its arguments must fit."""

    name: str
    description: str
    params_model: type[ToolParams]
    handler: ToolHandler

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.params_model.model_json_schema(),
        }

    def parse(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        """Handler keyword arguments from raw tool-call *arguments*.

        Raises:
            ValidationError: If the arguments do not fit ``params_model``.
        """
        return self.params_model.model_validate(dict(arguments)).model_dump()


def _summary(fn: Callable[..., Any]) -> str:
    doc = inspect.getdoc(fn) or ""
    return doc.split("\n\n", 1)[0].replace("\n", " ").strip()


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
        for error in exc.errors()
    )


class ToolRegistry:
    """Catalog of tools the assistant can call.

    Handlers register with the decorator; the first paragraph of the
    handler's docstring becomes the tool description::

        @registry.tool(CreateReminderParams)
        async def create_reminder(description: str, date_time: str, child_name: str):
            '''Create a one-off reminder for a child.'''
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        params_model: type[ToolParams] = ToolParams,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Register an async handler under *name* (default: the function name).

        Raises:
            TypeError: If the handler is not an async function.
            ValueError: If the name is taken or there is no description.
        """

        def decorator(fn: ToolHandler) -> ToolHandler:
            tool_name = name or fn.__name__
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{tool_name}' must be an async function"
                raise TypeError(msg)
            if tool_name in self._tools:
                msg = f"Tool '{tool_name}' is already registered"
                raise ValueError(msg)
            text = description or _summary(fn)
            if not text:
                msg = f"Tool '{tool_name}' needs a description or a docstring"
                raise ValueError(msg)
            self._tools[tool_name] = ToolDef(tool_name, text, params_model, fn)
            return fn

        return decorator

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def schemas(self) -> list[dict[str, Any]]:
        """Tool-calling schemas for every registered tool, in registration order."""
        return [tool_def.schema() for tool_def in self._tools.values()]

    async def execute(self, name: str, arguments: Mapping[str, Any]) -> ToolResult:
        """Validate *arguments* and run the named tool.

        Never raises: unknown tools, invalid arguments and handler failures
        all come back as an error result.  SchoolBell errors keep their
        message; anything else is logged and reported generically.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        try:
            kwargs = tool_def.parse(arguments)
        except ValidationError as exc:
            logger.warning("Tool %s got invalid arguments: %s", name, exc)
            return ToolResult(error=f"Invalid arguments for {name}: {_describe(exc)}")

        logger.info("Running tool %s with %s", name, kwargs)
        started = time.monotonic()
        try:
            result = await tool_def.handler(**kwargs)
        except SchoolBellError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return ToolResult(error=str(exc))
        except Exception:
            logger.exception("Tool %s crashed after %.2fs", name, time.monotonic() - started)
            return ToolResult(error=f"{name} failed unexpectedly, see the logs")

        if not result.success:
            logger.warning("Tool %s returned an error: %s", name, result.error)
        else:
            logger.info("Tool %s finished in %.2fs", name, time.monotonic() - started)
        return result


registry = ToolRegistry()
