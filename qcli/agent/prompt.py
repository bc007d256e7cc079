"""
System prompts and environment context.

Each invocation mode gets its own base prompt; an environment block
(user, OS, working directory, shell, terminal, git branch) is appended
so the agent knows where it is running.
"""
import asyncio
import getpass
import logging
import os
import platform
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .policy import Mode


logger = logging.getLogger(__name__)

GIT_TIMEOUT = 2.0

QUERY_PROMPT = """You are **q**, a concise terminal assistant.

## Guidelines
- Be concise - terminal users appreciate brevity
- Show, don't tell - use commands and code examples
- Format for terminal - use markdown that renders well in a terminal
- Answer directly - no fluff, get to the point

You do NOT have access to tools. Just answer the question directly."""

PIPE_PROMPT = """You are a Unix pipeline filter. Output goes directly to another program.

ABSOLUTE RULES - VIOLATING THESE BREAKS THE PIPELINE:
1. Output ONLY raw content - NO markdown, NO code blocks, NO backticks
2. NO explanations, NO commentary, NO "Here's...", NO questions
3. If transforming data: output ONLY the transformed data
4. If explaining: output ONLY the explanation text
5. NEVER wrap output in ``` code fences - this corrupts the pipeline

You are cat, sed, jq - a silent transformer. Raw output only."""

AGENT_PROMPT = """You are **q**, the shell's quiet companion - an elegant terminal assistant that helps users work efficiently in their shell environment.

## Your Capabilities
You have access to these tools:
- **Read** - Read files from the filesystem
- **Glob** - Find files by pattern (e.g., "*.py", "src/**/*.js")
- **Grep** - Search file contents with regex
- **Bash** - Execute shell commands (with user approval)
- **Write** / **Edit** - Create and change files (with user approval)

## Guidelines
1. **Announce, then act** - Before using tools, write a brief one-liner explaining what you're about to do. Never silently run a bunch of tools.
2. **Be concise** - No fluff. Get to the point.
3. **Use your tools** - Don't ask users to run commands you can run yourself
4. **Format for terminal** - Use markdown that renders well in a terminal

Remember: You're a power user's companion, not a chatbot."""

_BASE_PROMPTS = {
    Mode.QUERY: QUERY_PROMPT,
    Mode.PIPE: PIPE_PROMPT,
    Mode.INTERACTIVE: AGENT_PROMPT,
    Mode.AGENT: AGENT_PROMPT,
}


@dataclass
class GitInfo:
    branch: str
    status: str  # 'clean' or 'dirty'


@dataclass
class EnvironmentContext:
    """Where the agent is running."""
    cwd: Optional[str] = None
    shell: Optional[str] = None
    term: Optional[str] = None
    git: Optional[GitInfo] = None


async def _run_git(*args: str, cwd: Optional[str] = None) -> tuple[bool, str]:
    """Run a git command; (succeeded, stripped stdout)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return False, ""

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=GIT_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.debug("git %s timed out", " ".join(args))
        return False, ""
    return proc.returncode == 0, stdout.decode(errors="replace").strip()


async def get_git_info(cwd: Optional[str] = None) -> Optional[GitInfo]:
    """
    Branch and clean/dirty state of the repository containing cwd.

    Args:
        cwd: Directory to inspect (defaults to the process cwd)

    Returns:
        GitInfo, or None outside a repository or on a detached HEAD
    """
    inside, _ = await _run_git("rev-parse", "--is-inside-work-tree", cwd=cwd)
    if not inside:
        return None
    ok, branch = await _run_git("branch", "--show-current", cwd=cwd)
    if not ok or not branch:
        return None
    ok, porcelain = await _run_git("status", "--porcelain", cwd=cwd)
    status = "clean" if ok and not porcelain else "dirty"
    return GitInfo(branch=branch, status=status)


async def get_environment_context(include_git: bool = True, include_cwd: bool = True) -> EnvironmentContext:
    """Collect environment details for the system prompt."""
    cwd = os.getcwd()
    return EnvironmentContext(
        cwd=cwd if include_cwd else None,
        shell=os.environ.get("SHELL"),
        term=os.environ.get("TERM_PROGRAM") or os.environ.get("TERM"),
        git=await get_git_info(cwd) if include_git else None,
    )


def _user_host() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"


def build_environment_block(ctx: EnvironmentContext) -> str:
    lines = [
        "## Environment",
        f"- **User**: {_user_host()}",
        f"- **OS**: {platform.system()} {platform.release()}",
        f"- **Home**: {Path.home()}",
    ]
    if ctx.cwd:
        lines.append(f"- **Working Directory**: {ctx.cwd}")
    if ctx.shell:
        lines.append(f"- **Shell**: {ctx.shell}")
    if ctx.term:
        lines.append(f"- **Terminal**: {ctx.term}")
    if ctx.git:
        lines.append(f"- **Git Branch**: {ctx.git.branch} ({ctx.git.status})")
    return "\n".join(lines)


def build_system_prompt(
    ctx: Optional[EnvironmentContext] = None,
    mode: Mode = Mode.AGENT,
    extra: Optional[str] = None,
) -> str:
    """
    Build the complete system prompt for a mode.

    Args:
        ctx: Environment context (omitted from the prompt when None)
        mode: Invocation mode selecting the base prompt
        extra: Configured text appended at the end

    Returns:
        Prompt text
    """
    parts = [_BASE_PROMPTS[Mode(mode)]]
    if ctx is not None:
        parts.append(build_environment_block(ctx))
    if extra:
        parts.append(extra.strip())
    return "\n\n".join(parts)
