"""
Tool Registry - Dispatch for the assistant's side-effect tools.

Two tools exist: nav (open a screen) and theme (switch light/dark). Each tool
is a self-contained definition registered with a registry instance owned by
one orchestrator, so independent conversations never share tool state.

The registry:
- produces the OpenAI-style tools schema sent with the model request
- validates and canonicalizes arguments before any executor runs
- runs at most max_tool_calls calls per turn, one per tool name
- turns every outcome into a localized confirmation string
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from config import RuntimeConfig, runtime_config
from errors import ValidationError, error_response
from logging_config import log_tool
from routers.chat_prompts import get_message

logger = logging.getLogger(__name__)

NAV = "nav"
THEME = "theme"

_UNSAFE_ARGUMENT = re.compile(r"<script|javascript:|\bon\w+\s*=", re.IGNORECASE)


@dataclass
class ToolDefinition:
    """Definition of a tool for the registry.

    Attributes:
        name: Canonical tool name (nav, theme)
        description: Description sent to the model
        parameters: JSON-schema properties
        required_params: Required property names
        executor: async callable(language=..., **arguments) -> result dict
        arg_aliases: Wire argument names mapped to canonical ones
        choices: Callable returning the allowed values of the first required
            parameter; rendered as an enum in the schema when non-empty
        failure_message: Message key used when the executor reports an error
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    required_params: List[str]
    executor: Callable[..., Awaitable[Dict[str, Any]]]
    arg_aliases: Dict[str, str] = field(default_factory=dict)
    choices: Optional[Callable[[], List[str]]] = None
    failure_message: str = "tool_failed"


@dataclass
class ToolResult:
    """Standardized result from tool execution."""

    success: bool
    name: str
    data: Dict[str, Any]
    error: Optional[str] = None
    confirmation: str = ""

    def to_message(self) -> str:
        """Content of the tool-role transcript message."""
        return json.dumps(
            {"success": self.success, "message": self.confirmation or self.error or ""},
            ensure_ascii=False,
        )


@dataclass
class ToolRunOutcome:
    """All tool results of one turn plus the combined confirmation text."""

    confirmation: str = ""
    results: List[ToolResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return any(r.success for r in self.results)

    @property
    def tools_used(self) -> List[str]:
        return [r.name for r in self.results]


class ToolRegistry:
    """
    Per-conversation tool registry.

    Usage:
        registry = ToolRegistry(config)
        registry.register(NavigationTool(router, catalog).definition())

        schema = registry.get_tools_schema()
        outcome = await registry.run(tool_calls, language="vi", hotline="1108")
    """

    def __init__(self, config: Optional[RuntimeConfig] = None):
        config = config or runtime_config
        self.max_tool_calls = config.max_tool_calls
        self.max_args_length = config.max_tool_args_length
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool definition."""
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def get_tools_schema(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Generate OpenAI-compatible tools schema for function calling.

        Args:
            names: Restrict the schema to these tools (default: all)
        """
        wanted = set(names) if names is not None else None
        schema = []
        for tool in self._tools.values():
            if wanted is not None and tool.name not in wanted:
                continue
            properties = json.loads(json.dumps(tool.parameters))
            if tool.choices and tool.required_params:
                values = tool.choices()
                if values:
                    properties[tool.required_params[0]]["enum"] = list(values)
            schema.append(
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": {
                            "type": "object",
                            "properties": properties,
                            "required": tool.required_params,
                        },
                    },
                }
            )
        return schema

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_arguments(self, tool: ToolDefinition, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Canonicalize and check tool arguments.

        Raises:
            ValidationError: Oversized, unsafe, mistyped or missing arguments
        """
        serialized = json.dumps(arguments, ensure_ascii=False)
        if len(serialized) > self.max_args_length:
            raise ValidationError(
                "Tool arguments too long",
                details=f"{len(serialized)} > {self.max_args_length} chars",
                error_type="length",
            )
        if _UNSAFE_ARGUMENT.search(serialized) or "../" in serialized:
            raise ValidationError("Unsafe tool arguments", error_type="unsafe")

        canonical: Dict[str, Any] = {}
        for key, value in arguments.items():
            name = tool.arg_aliases.get(key, key)
            if name not in tool.parameters or name in canonical:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"Argument {name} must be a string", parameter=name, error_type="type")
            canonical[name] = value.strip()

        for name in tool.required_params:
            if not canonical.get(name):
                raise ValidationError(f"Missing argument: {name}", parameter=name)
        return canonical

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute(self, call, language: str = "vi", hotline: str = "") -> ToolResult:
        """
        Execute one canonical tool call. Never raises.

        Args:
            call: ToolCall(name, arguments)
            language: Language of the confirmation text
            hotline: Escalation number quoted in failure messages
        """
        tool = self._tools.get(call.name)
        if tool is None:
            logger.info(f"Tool not registered: {call.name}")
            return ToolResult(
                success=False,
                name=call.name,
                data={},
                error=f"Unknown tool: {call.name}",
                confirmation=get_message("tool_failed", language, hotline=hotline),
            )

        log_tool(logger, tool.name, "start", args=call.arguments)
        try:
            arguments = self.validate_arguments(tool, call.arguments)
        except ValidationError as e:
            logger.warning(f"[{tool.name}] {e.code.value}: {e}")
            result = error_response(e, tool=tool.name)
        else:
            result = await tool.executor(language=language, **arguments)

        success = bool(result.get("success"))
        if success:
            confirmation = result.get("message", "")
            error = None
        else:
            err = result.get("error") or {}
            error = err.get("message") if isinstance(err, dict) else str(err)
            code = err.get("code", "") if isinstance(err, dict) else ""
            key = "tool_invalid_args" if code.startswith("VALIDATION_") else tool.failure_message
            confirmation = get_message(key, language, hotline=hotline)

        log_tool(logger, tool.name, "end", success=success)
        return ToolResult(success=success, name=tool.name, data=result, error=error, confirmation=confirmation)

    async def run(self, calls: Iterable, language: str = "vi", hotline: str = "") -> ToolRunOutcome:
        """
        Execute the calls of one turn in order.

        At most max_tool_calls calls run and each tool name runs once.
        Confirmations are joined once, in execution order.
        """
        results: List[ToolResult] = []
        seen = set()
        for call in calls:
            if call.name in seen:
                logger.debug(f"Skipping repeated {call.name} call in the same turn")
                continue
            if len(results) >= self.max_tool_calls:
                logger.info(f"Tool call limit reached ({self.max_tool_calls}), dropping {call.name}")
                break
            seen.add(call.name)
            results.append(await self.execute(call, language, hotline))

        confirmations: List[str] = []
        for result in results:
            if result.confirmation and result.confirmation not in confirmations:
                confirmations.append(result.confirmation)
        return ToolRunOutcome(confirmation="\n".join(confirmations), results=results)
