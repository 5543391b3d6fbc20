"""Python code generator plugin.

Adds coding instructions to code-generation requests, offers a "Save Code"
button on replies that contain a fenced Python block, and exposes
``generate_class`` / ``refactor_code`` tools.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from aimate.config import parse_bool
from aimate.errors import CompletionError, ConfigError
from aimate.llm.client import CompletionBackend
from aimate.models.chat import Message, Role
from aimate.plugins.base import (
    Capability,
    MessageInterceptor,
    Plugin,
    ToolProvider,
    UIExtension,
)
from aimate.plugins.models import (
    ConversationContext,
    InputExtension,
    InterceptResult,
    MessageAction,
    PluginSettings,
    PluginTool,
    SettingField,
    SettingFieldType,
    ToolParameter,
    ToolResult,
    ToolValueType,
)

logger = logging.getLogger(__name__)

INSTRUCTIONS_MARKER = "[Code Generation Instructions]"
CODE_INSTRUCTIONS = f"""\
{INSTRUCTIONS_MARKER}
- Use Python 3 with type hints
- Follow PEP 8
- Include docstrings
- Add error handling
- Make it production-ready"""

REFACTOR_PROMPT = """\
Refactor the following Python code, focusing on: {improvements}.
Keep its behaviour unchanged.  Reply with the complete refactored code in a
single ```python block, followed by a short list of the changes you made.

```python
{code}
```"""

CODE_TRIGGERS = ("generate code", "write a function")

_PYTHON_BLOCK = re.compile(r"```(?:python|py)[ \t]*\n(.*?)(?:```|\Z)", re.DOTALL)


def extract_python_block(content: str) -> Optional[str]:
    """Return the first fenced Python block in *content*, or None."""
    match = _PYTHON_BLOCK.search(content)
    return match.group(1).strip() if match else None


def render_dataclass(class_name: str, fields: list[dict[str, Any]], module_doc: str = "") -> str:
    """Render a Python dataclass definition.

    Each field is a mapping with ``name`` and an optional ``type``
    (default ``str``).  Raises ValueError on invalid identifiers.
    """
    if not class_name.isidentifier():
        raise ValueError(f"Invalid class name: {class_name!r}")
    lines = []
    if module_doc:
        lines += [f'"""{module_doc}"""', ""]
    lines += [
        "from __future__ import annotations",
        "",
        "from dataclasses import dataclass",
        "",
        "",
        "@dataclass",
        f"class {class_name}:",
        f'    """{class_name} record."""',
        "",
    ]
    if not fields:
        lines.append("    pass")
    for f in fields:
        name = str(f.get("name", ""))
        if not name.isidentifier():
            raise ValueError(f"Invalid field name: {name!r}")
        lines.append(f"    {name}: {f.get('type') or 'str'}")
    return "\n".join(lines) + "\n"


class CodeGeneratorPlugin(Plugin, MessageInterceptor, UIExtension, ToolProvider):
    id = "code-generator"
    name = "Python Code Generator"
    description = "Generates Python code from natural language descriptions"
    version = "1.0.0"
    author = "aiMate Team"
    icon = "Code"
    capabilities = (
        Capability.MESSAGE_INTERCEPTOR | Capability.UI_EXTENSION | Capability.TOOL_PROVIDER
    )

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        backend: Optional[CompletionBackend] = None,
    ) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path.home() / ".aimate" / "snippets"
        self.backend = backend

    # -- interception --------------------------------------------------------

    async def on_before_send(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        try:
            enabled = parse_bool(context.user_settings.get("auto_enhance", True), "auto_enhance")
        except ConfigError:
            enabled = True
        lowered = message.content.lower()
        if (
            not enabled
            or INSTRUCTIONS_MARKER in message.content
            or not any(t in lowered for t in CODE_TRIGGERS)
        ):
            return InterceptResult.passthrough()

        return InterceptResult.rewrite(
            message.with_content(f"{message.content}\n\n{CODE_INSTRUCTIONS}"),
            {"enhanced_by": self.id},
        )

    async def on_after_receive(
        self, message: Message, context: ConversationContext
    ) -> InterceptResult:
        if extract_python_block(message.content) is None:
            return InterceptResult.passthrough()
        logger.debug("Detected Python code in reply %s", message.id)
        return InterceptResult.passthrough({"contains_code": True, "language": "python"})

    # -- UI ------------------------------------------------------------------

    def save_code(self, message: Message) -> Optional[Path]:
        """Write the message's Python block to ``output_dir`` and return the path."""
        code = extract_python_block(message.content)
        if code is None:
            return None
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        path = self.output_dir / f"snippet-{stamp}-{message.id[:8]}.py"
        path.write_text(code + "\n", encoding="utf-8")
        logger.info("Saved code to %s", path)
        return path

    async def _save_code_action(self, message: Message) -> None:
        self.save_code(message)

    async def _open_template_picker(self) -> None:
        logger.info("Code template picker opened")

    def get_message_actions(self, message: Message) -> Iterable[MessageAction]:
        if message.role != Role.ASSISTANT or extract_python_block(message.content) is None:
            return []
        return [
            MessageAction(
                id="save-code",
                label="Save Code",
                icon="Save",
                tooltip="Save code to a .py file",
                on_click=self._save_code_action,
            )
        ]

    def get_input_extensions(self) -> Iterable[InputExtension]:
        return [
            InputExtension(
                id="quick-code",
                icon="Code",
                tooltip="Generate code from template",
                on_click=self._open_template_picker,
                order=10,
            )
        ]

    def get_settings_ui(self) -> Optional[PluginSettings]:
        return PluginSettings(
            title="Code Generator Settings",
            fields=[
                SettingField(
                    key="auto_enhance",
                    label="Auto-enhance code prompts",
                    type=SettingFieldType.BOOLEAN,
                    default_value=True,
                ),
                SettingField(
                    key="python_version",
                    label="Target Python",
                    type=SettingFieldType.DROPDOWN,
                    default_value="3.12",
                    options=["3.13", "3.12", "3.11", "3.10"],
                ),
                SettingField(
                    key="code_style",
                    label="Code Style",
                    type=SettingFieldType.DROPDOWN,
                    default_value="PEP 8",
                    options=["PEP 8", "Black", "Google"],
                ),
            ],
        )

    # -- tools ---------------------------------------------------------------

    def get_tools(self) -> Iterable[PluginTool]:
        return [
            PluginTool(
                name="generate_class",
                description="Generate a Python dataclass with typed fields",
                parameters=[
                    ToolParameter("class_name", "Name of the class to generate"),
                    ToolParameter(
                        "fields",
                        "List of {name, type} mappings",
                        ToolValueType.LIST,
                    ),
                    ToolParameter(
                        "module_doc",
                        "Module docstring",
                        required=False,
                        default="",
                    ),
                ],
            ),
            PluginTool(
                name="refactor_code",
                description="Ask the language model to refactor Python code",
                requires_confirmation=True,
                parameters=[
                    ToolParameter("code", "The Python code to refactor"),
                    ToolParameter(
                        "improvements",
                        "Comma-separated list: performance, readability, security",
                        required=False,
                        default="readability,performance",
                    ),
                ],
            ),
        ]

    async def execute_tool(self, tool_name: str, parameters: dict[str, Any]) -> ToolResult:
        if tool_name == "generate_class":
            return self._generate_class(parameters)
        if tool_name == "refactor_code":
            return await self._refactor_code(parameters)
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    def _generate_class(self, parameters: dict[str, Any]) -> ToolResult:
        class_name = parameters["class_name"]
        fields = parameters["fields"]
        if not all(isinstance(f, dict) for f in fields):
            return ToolResult.fail("Each field must be a mapping with 'name' and 'type'")
        try:
            code = render_dataclass(class_name, fields, parameters.get("module_doc", ""))
        except ValueError as exc:
            return ToolResult.fail(str(exc))
        return ToolResult.ok(code, {"language": "python", "class_name": class_name})

    async def _refactor_code(self, parameters: dict[str, Any]) -> ToolResult:
        if self.backend is None:
            return ToolResult.fail("refactor_code needs a completion backend")
        improvements = [
            i.strip() for i in parameters.get("improvements", "").split(",") if i.strip()
        ]
        prompt = REFACTOR_PROMPT.format(
            improvements=", ".join(improvements) or "readability", code=parameters["code"]
        )
        try:
            completion = await self.backend.send_chat([{"role": "user", "content": prompt}])
        except CompletionError as exc:
            logger.warning("Refactor request failed: %s", exc)
            return ToolResult.fail(f"Refactor failed: {exc}")

        code = extract_python_block(completion.content)
        if code is None:
            return ToolResult.fail("The model did not return a Python code block")
        return ToolResult.ok(
            code,
            {
                "improvements_applied": improvements,
                "model": completion.model,
                "explanation": completion.content,
            },
        )
