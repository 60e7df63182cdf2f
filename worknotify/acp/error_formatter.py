"""Human-readable messages for agent launch and crash failures."""

from worknotify.acp.errors import ProcessErrorContext

_RULE = "━"

_INSTALL_HINTS: dict[str, str] = {
    "npx": "Install Node.js: https://nodejs.org",
    "node": "Install Node.js: https://nodejs.org",
    "python": "Install Python: https://python.org",
    "python3": "Install Python: https://python.org",
    "uvx": "Install uv: https://docs.astral.sh/uv/",
    "opencode": "Install OpenCode: https://opencode.ai",
}


def _header(title: str, context: ProcessErrorContext | None) -> list[str]:
    lines = [title, _RULE * len(title)]
    if context:
        lines.append(f"Command: {' '.join(context.command)}")
        if context.cwd:
            lines.append(f"Directory: {context.cwd}")
    return lines


def format_command_not_found(context: ProcessErrorContext | None, command: str) -> str:
    """Format a launch failure for a missing executable, with installation hints."""
    lines = _header("Agent Launch Failed", context)
    lines.append(f"Problem: Command not found: {command}")
    lines.append("Troubleshooting:")
    lines.append(f"  - Check if {command} exists: which {command}")
    hint = _INSTALL_HINTS.get(command)
    if hint:
        lines.append(f"  - {hint}")
    lines.append("  - Note: cmd is split on whitespace; quoting is not supported")
    return "\n".join(lines)


def format_launch_error(context: ProcessErrorContext | None, error: BaseException) -> str:
    """Format any other launch failure (permissions, bad working directory, ...)."""
    lines = _header("Agent Launch Failed", context)
    lines.append(f"Problem: {error}")
    return "\n".join(lines)


def format_process_exit(
    context: ProcessErrorContext | None,
    exit_code: int | None,
) -> str:
    """Format an unexpected agent exit, including the last stderr lines."""
    lines = _header("Agent Process Exited", context)
    if exit_code is not None:
        lines.append(f"Problem: Agent exited with code {exit_code}")
    else:
        lines.append("Problem: Agent process terminated unexpectedly")

    stderr_lines = context.stderr_lines if context else None
    if stderr_lines:
        lines.append("Agent stderr (last lines):")
        lines.extend(f"  {line}" for line in stderr_lines[-10:])
    return "\n".join(lines)
