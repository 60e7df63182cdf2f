"""Pydantic models for notification target configuration."""

from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Content turns routinely take minutes; never wait less than this for them
MIN_PROMPT_TIMEOUT: float = 900.0


class _CamelModel(BaseModel):
    """Base for models whose JSON keys are camelCase."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class FileSystemCapabilities(_CamelModel):
    """File system access the client offers to the agent."""

    read_text_file: bool | None = Field(default=None, alias="readTextFile")
    write_text_file: bool | None = Field(default=None, alias="writeTextFile")
    list_directory: bool | None = Field(default=None, alias="listDirectory")


class TerminalCapabilities(_CamelModel):
    """Terminal access the client offers to the agent."""

    create: bool | None = None
    send_text: bool | None = Field(default=None, alias="sendText")


class EditorCapabilities(_CamelModel):
    """Editor integration the client offers to the agent."""

    apply_diff: bool | None = Field(default=None, alias="applyDiff")
    open_file: bool | None = Field(default=None, alias="openFile")


class ACPCapabilities(_CamelModel):
    """Client capabilities declared in the ``initialize`` request.

    Example in targets.json:
        "capabilities": {
            "fileSystem": {"readTextFile": true, "writeTextFile": false},
            "terminal": {"create": false}
        }
    """

    file_system: FileSystemCapabilities | None = Field(default=None, alias="fileSystem")
    terminal: TerminalCapabilities | None = None
    editor: EditorCapabilities | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase object sent to the agent, unset fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ACPTargetConfig(_CamelModel):
    """Agent-process (ACP) channel configuration.

    ``session_id`` is mutable: the session driver writes back the id of a
    newly created session so later notifications through the same config
    object continue that session.
    """

    type: Literal["acp"] = "acp"

    cmd: str
    """Agent command line, split on whitespace (no shell quoting)."""

    cwd: str | None = None
    """Working directory of the agent. None = current directory."""

    timeout: float = Field(default=300.0, gt=0)
    """Seconds to wait for each handshake request."""

    prompt_timeout: float | None = Field(default=None, gt=0, alias="promptTimeout")
    """Seconds to wait for the content prompt. None = max(timeout, 900)."""

    session_id: str | None = Field(default=None, alias="sessionId")
    """Existing session to continue instead of creating a new one."""

    capabilities: ACPCapabilities | None = None
    """Client capabilities declared in ``initialize``."""

    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    """Role/behaviour text sent once after a new session is created."""

    cancel_on_timeout: bool = Field(default=False, alias="cancelOnTimeout")
    """Send ``session/cancel`` when a prompt turn times out."""

    debug: bool | None = None
    """Log undecodable agent output. None = follow WORK_DEBUG/DEBUG."""

    on_notification: Callable[[str, Any], Any] | None = Field(default=None, exclude=True)
    """Receives ``(method, params)`` for every agent notification."""

    @field_validator("cmd")
    @classmethod
    def _cmd_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cmd must not be empty")
        return v

    def effective_prompt_timeout(self) -> float:
        """Deadline for the content prompt turn."""
        if self.prompt_timeout is not None:
            return self.prompt_timeout
        return max(self.timeout, MIN_PROMPT_TIMEOUT)

    def capabilities_payload(self) -> dict[str, Any]:
        return self.capabilities.to_wire() if self.capabilities is not None else {}


class BashTargetConfig(_CamelModel):
    """Shell script channel configuration.

    ``script`` is either a path/command or the built-in name ``work:log``.
    """

    type: Literal["bash"] = "bash"
    script: str
    timeout: float = Field(default=30.0, gt=0)


class TelegramTargetConfig(_CamelModel):
    """Telegram Bot API channel configuration."""

    type: Literal["telegram"] = "telegram"
    bot_token: str = Field(alias="botToken")
    chat_id: str = Field(alias="chatId")

    @field_validator("chat_id", mode="before")
    @classmethod
    def _chat_id_to_str(cls, v: Any) -> Any:
        # Numeric chat ids are common in hand-written files
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


TargetConfig = Annotated[
    ACPTargetConfig | BashTargetConfig | TelegramTargetConfig,
    Field(discriminator="type"),
]


class NotificationTarget(BaseModel):
    """A named, configured notification channel."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    config: TargetConfig

    @property
    def type(self) -> str:
        return self.config.type
