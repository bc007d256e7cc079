"""
Tool authorization.

The backend asks before it runs any tool; ``PermissionEngine.decide``
answers allow or deny. The only side effect is an optional interactive
approval prompt, which resolves to deny when the turn is aborted.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Protocol

from ..constants import APPROVAL_REQUIRED_TOOLS, READ_ONLY_TOOLS
from .policy import ModePolicy, PermissionMode


logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


HIGH_RISK_PATTERNS = [
    re.compile(r"\brm\s+(-[a-z]*r[a-z]*\b|--recursive\b)", re.IGNORECASE),
    re.compile(r"\b(sudo|su|doas)\b"),
    re.compile(r"\bchmod\s+(-[a-zA-Z]+\s+)*0?777\b"),
    re.compile(r"\b(dd|mkfs(\.\w+)?|fdisk)\b", re.IGNORECASE),
    re.compile(r">\s*/dev/(?!(null|stdout|stderr|tty)\b)"),
    re.compile(r"\bkill\s+-(9|KILL)\b"),
    re.compile(r"\bgit\s+reset\s+.*--hard\b", re.IGNORECASE),
    re.compile(r"\bgit\s+filter-(branch|repo)\b", re.IGNORECASE),
]

MEDIUM_RISK_PATTERNS = [
    re.compile(r"\brm\b", re.IGNORECASE),
    re.compile(r"\bmv\b", re.IGNORECASE),
    re.compile(r"\bchmod\b", re.IGNORECASE),
    re.compile(r"\bchown\b", re.IGNORECASE),
    re.compile(r"\bgit\s+(push|reset|rebase)\b", re.IGNORECASE),
    re.compile(r"\bnpm\s+(publish|unpublish)\b", re.IGNORECASE),
    re.compile(r"\b(curl|wget)\b.*\|\s*(sudo\s+)?(ba|z)?sh\b", re.IGNORECASE),
]


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    reason: str = ""


def assess_risk(tool_name: str, tool_input: dict) -> RiskAssessment:
    """
    Classify how much harm a tool call could do.

    Args:
        tool_name: Tool being requested
        tool_input: Its input

    Returns:
        Risk level and a one-line rationale
    """
    if tool_name == "Bash":
        command = str(tool_input.get("command", ""))
        if any(p.search(command) for p in HIGH_RISK_PATTERNS):
            return RiskAssessment(RiskLevel.HIGH, "Potentially destructive command")
        if any(p.search(command) for p in MEDIUM_RISK_PATTERNS):
            return RiskAssessment(RiskLevel.MEDIUM, "May modify files or system state")
        return RiskAssessment(RiskLevel.LOW, "Runs a shell command")
    if tool_name == "Write":
        return RiskAssessment(RiskLevel.MEDIUM, "Creates or overwrites a file")
    if tool_name in ("Edit", "MultiEdit"):
        return RiskAssessment(RiskLevel.LOW, "Modifies existing file content")
    if tool_name == "NotebookEdit":
        return RiskAssessment(RiskLevel.LOW, "Modifies Jupyter notebook")
    return RiskAssessment(RiskLevel.LOW)


@dataclass(frozen=True)
class PermissionDecision:
    """
    Answer returned to the backend for one tool request.

    ``updated_input`` is only meaningful for allow decisions; ``message``
    is the reason handed back on deny.
    """
    allowed: bool
    updated_input: Optional[dict] = None
    message: str = ""

    @classmethod
    def allow(cls, tool_input: dict) -> "PermissionDecision":
        return cls(True, updated_input=tool_input)

    @classmethod
    def deny(cls, message: str) -> "PermissionDecision":
        return cls(False, message=message)

    @property
    def behavior(self) -> str:
        return "allow" if self.allowed else "deny"

    def to_wire(self) -> dict:
        if self.allowed:
            return {"behavior": "allow", "updatedInput": self.updated_input}
        return {"behavior": "deny", "message": self.message}


@dataclass(frozen=True)
class ApprovalRequest:
    """Everything the user needs to see to approve a tool call."""
    tool_name: str
    tool_input: dict
    risk: RiskAssessment

    @property
    def offers_always(self) -> bool:
        return self.risk.level != RiskLevel.HIGH


class Prompter(Protocol):
    async def ask(self, request: ApprovalRequest) -> str:
        """Show the request and return the user's raw answer."""
        ...


@dataclass(frozen=True)
class Approval:
    approved: bool
    always: bool = False


def interpret_answer(answer: str, risk: RiskLevel) -> Approval:
    """
    Map a typed answer to an approval.

    ``y``/``yes`` approves. ``a``/``always`` approves and remembers the
    tool, except for high risk calls. Empty input approves low risk calls
    only. Anything else denies.
    """
    answer = answer.strip().lower()
    if answer in ("y", "yes"):
        return Approval(True)
    if answer in ("a", "always") and risk != RiskLevel.HIGH:
        return Approval(True, always=True)
    if answer == "" and risk == RiskLevel.LOW:
        return Approval(True)
    return Approval(False)


CANCELLED_MESSAGE = "Operation cancelled"
DRY_RUN_MESSAGE = "[dry-run] Tool execution skipped"
USER_DENIED_MESSAGE = "User denied"


@dataclass
class PermissionEngine:
    """
    Decides whether the backend may run a tool.

    Rules, first match wins: dry-run denies everything; read-only tools
    are allowed; unknown tools are denied; blocked commands are denied;
    tools approved with "always" are allowed; then the policy's
    permission mode decides.

    Attributes:
        policy: Mode policy for the current invocation
        prompter: Interactive approval prompt (prompt mode only)
        dry_run: Deny every request
        blocked_commands: Substrings that make a Bash command off limits
        abort: Event set when the turn is interrupted
    """
    policy: ModePolicy
    prompter: Optional[Prompter] = None
    dry_run: bool = False
    blocked_commands: Iterable[str] = ()
    abort: Optional[asyncio.Event] = None
    always_approved: set = field(default_factory=set)

    def __post_init__(self) -> None:
        self.blocked_commands = tuple(c for c in self.blocked_commands if c)
        self._lock = asyncio.Lock()

    async def decide(self, tool_name: str, tool_input: dict) -> PermissionDecision:
        """
        Authorize one tool request.

        Args:
            tool_name: Tool being requested
            tool_input: Its input

        Returns:
            PermissionDecision for the backend
        """
        decision = await self._decide(tool_name, tool_input)
        logger.debug(
            "Permission %s for %s%s",
            decision.behavior,
            tool_name,
            f" ({decision.message})" if decision.message else "",
        )
        return decision

    async def _decide(self, tool_name: str, tool_input: dict) -> PermissionDecision:
        if self.dry_run:
            logger.info("[dry-run] %s %s", tool_name, tool_input)
            return PermissionDecision.deny(DRY_RUN_MESSAGE)

        if tool_name in READ_ONLY_TOOLS:
            return PermissionDecision.allow(tool_input)

        if tool_name not in APPROVAL_REQUIRED_TOOLS:
            return PermissionDecision.deny(f"Unknown tool: {tool_name}")

        blocked = self._blocked_entry(tool_name, tool_input)
        if blocked is not None:
            return PermissionDecision.deny(f"Blocked by configuration: {blocked}")

        if tool_name in self.always_approved:
            return PermissionDecision.allow(tool_input)

        mode = self.policy.permission_mode
        if mode == PermissionMode.DENY_WRITES:
            return PermissionDecision.deny(
                f"{tool_name} requires approval, which is not available in "
                f"{self.policy.mode.value} mode"
            )
        if mode != PermissionMode.PROMPT or self.prompter is None:
            return PermissionDecision.deny(
                f"{tool_name} is not enabled in {self.policy.mode.value} mode"
            )

        return await self._prompt(tool_name, tool_input)

    def _blocked_entry(self, tool_name: str, tool_input: dict) -> Optional[str]:
        if tool_name != "Bash":
            return None
        command = str(tool_input.get("command", ""))
        for entry in self.blocked_commands:
            if entry in command:
                return entry
        return None

    async def _prompt(self, tool_name: str, tool_input: dict) -> PermissionDecision:
        request = ApprovalRequest(tool_name, tool_input, assess_risk(tool_name, tool_input))

        async with self._lock:
            answer = await self._ask_unless_aborted(request)

        if answer is None:
            return PermissionDecision.deny(CANCELLED_MESSAGE)

        approval = interpret_answer(answer, request.risk.level)
        if not approval.approved:
            return PermissionDecision.deny(USER_DENIED_MESSAGE)
        if approval.always:
            self.always_approved.add(tool_name)
        return PermissionDecision.allow(tool_input)

    async def _ask_unless_aborted(self, request: ApprovalRequest) -> Optional[str]:
        """The user's answer, or None if the turn was aborted first."""
        if self.abort is None:
            return await self.prompter.ask(request)
        if self.abort.is_set():
            return None

        ask = asyncio.ensure_future(self.prompter.ask(request))
        aborted = asyncio.ensure_future(self.abort.wait())
        try:
            await asyncio.wait({ask, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [t for t in (ask, aborted) if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if self.abort.is_set() or not ask.done() or ask.cancelled():
            return None
        return ask.result()
