"""Agent turn processing for qcli."""
from .backend import AgentBackend, ClaudeAgentBackend, QueryOptions
from ..errors import BackendError, ConfigError, QError, SessionNotFoundError, StoreUnavailableError
from .messages import parse_message
from .permissions import PermissionDecision, PermissionEngine, RiskLevel, assess_risk
from .policy import MODE_POLICIES, Mode, ModePolicy, PermissionMode, RenderPolicy, policy_for
from .turn import TurnOutcome, TurnProcessor, TurnState, fold_message

__all__ = [
    'AgentBackend', 'ClaudeAgentBackend', 'QueryOptions',
    'QError', 'BackendError', 'ConfigError', 'SessionNotFoundError', 'StoreUnavailableError',
    'parse_message',
    'PermissionDecision', 'PermissionEngine', 'RiskLevel', 'assess_risk',
    'MODE_POLICIES', 'Mode', 'ModePolicy', 'PermissionMode', 'RenderPolicy', 'policy_for',
    'TurnOutcome', 'TurnProcessor', 'TurnState', 'fold_message',
]
