# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Any


class IAMPolicyError(Exception):
    """Base class for all iam-policy errors."""

    def __init__(self, message: str, code: str = "IAM_POLICY_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class PolicyValidationError(IAMPolicyError):
    """
    Raised when a proposed action or policy document is malformed.

    Evaluation is never attempted for an input that fails validation.

    Attributes:
        details: Structured error details, one dict per problem found.
    """

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.details = details or [{"msg": message}]


class EntityNotFoundError(IAMPolicyError):
    """Base class for the not-found family. Carries the entity kind and id."""

    kind = "Entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(
            f"{self.kind} '{entity_id}' does not exist.",
            code=f"{self.kind.upper().replace(' ', '_')}_NOT_FOUND",
        )
        self.entity_id = entity_id


class PolicyNotFoundError(EntityNotFoundError):
    """Raised when a referenced policy does not exist."""

    kind = "Policy"


class KeyNotFoundError(EntityNotFoundError):
    """Raised when a referenced key does not exist."""

    kind = "Key"


class AgentNotFoundError(EntityNotFoundError):
    """Raised when a referenced agent does not exist."""

    kind = "Agent"


class ExecutionNotFoundError(EntityNotFoundError):
    """Raised when a referenced execution log does not exist."""

    kind = "Execution log"


class TerminalStateError(IAMPolicyError):
    """
    Raised when an edit or status transition targets an entity that has
    already reached a terminal status.

    Attributes:
        entity_id: The entity that was targeted.
        status: Its current (terminal) status.
    """

    def __init__(self, kind: str, entity_id: str, status: str) -> None:
        super().__init__(
            f"{kind} '{entity_id}' is {status} and can no longer be changed.",
            code="TERMINAL_STATE",
        )
        self.entity_id = entity_id
        self.status = status


class InactiveEntityError(IAMPolicyError):
    """Raised when a paused/revoked agent or a non-active key tries to act."""

    def __init__(self, kind: str, entity_id: str, status: str) -> None:
        super().__init__(
            f"{kind} '{entity_id}' has status '{status}' and cannot act.",
            code="INACTIVE_ENTITY",
        )
        self.entity_id = entity_id
        self.status = status


class CapabilityDisabledError(IAMPolicyError):
    """
    Raised when an agent proposes an action whose capability is not enabled.

    Attributes:
        agent_id: The proposing agent.
        action_type: The action type that was proposed.
        capability: The capability the action type requires.
    """

    def __init__(self, agent_id: str, action_type: str, capability: str) -> None:
        super().__init__(
            f"Agent '{agent_id}' cannot perform '{action_type}': "
            f"capability '{capability}' is not enabled.",
            code="CAPABILITY_DISABLED",
        )
        self.agent_id = agent_id
        self.action_type = action_type
        self.capability = capability


class CurrencyConversionError(IAMPolicyError):
    """Raised when no conversion rate is known between two currencies."""

    def __init__(self, from_currency: str, to_currency: str) -> None:
        super().__init__(
            f"No conversion rate from {from_currency} to {to_currency}.",
            code="CONVERSION_ERROR",
        )
        self.from_currency = from_currency
        self.to_currency = to_currency


class ConcurrencyConflictError(IAMPolicyError):
    """
    Raised when the per-policy lock could not be acquired after the configured
    number of retries. The action was neither accepted nor denied; the caller
    must propose it again.
    """

    def __init__(self, policy_id: str, attempts: int) -> None:
        super().__init__(
            f"Policy '{policy_id}' is busy; lock not acquired after {attempts} attempt(s).",
            code="CONCURRENCY_CONFLICT",
        )
        self.policy_id = policy_id
        self.attempts = attempts


class ObservationTimeoutError(IAMPolicyError):
    """Raised when fetching an oracle/chain observation exceeds its timeout."""

    def __init__(self, source: str, timeout: float) -> None:
        super().__init__(
            f"Observation source '{source}' did not respond within {timeout:.2f}s.",
            code="OBSERVATION_TIMEOUT",
        )
        self.source = source
        self.timeout = timeout


class ConfigurationError(IAMPolicyError):
    """Raised when the engine is misconfigured."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")
