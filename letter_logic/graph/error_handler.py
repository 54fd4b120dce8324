from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import ValidationError

from letter_logic.graph.providers import ExternalCallError


DecisionAction = Literal["retry", "fail_branch", "abort"]


@dataclass(slots=True)
class ErrorHandlingDecision:
    action: DecisionAction
    reason: str


class ErrorHandler:
    """Retry policy for data nodes: retry, then fail the branch, or abort when critical."""

    def decide(
        self,
        *,
        error: BaseException,
        node_id: str,
        retry_count: int,
        max_retries: int,
        critical: bool,
    ) -> ErrorHandlingDecision:
        if retry_count < max_retries and self._is_retryable(error):
            return ErrorHandlingDecision(
                action="retry",
                reason=f"Retrying '{node_id}' ({retry_count + 1}/{max_retries}) after: {error}",
            )

        attempts = retry_count + 1
        if critical:
            return ErrorHandlingDecision(
                action="abort",
                reason=f"Critical data node '{node_id}' failed after {attempts} attempt(s): {error}",
            )
        return ErrorHandlingDecision(
            action="fail_branch",
            reason=f"Data node '{node_id}' failed after {attempts} attempt(s): {error}",
        )

    def _is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, ExternalCallError):
            return error.transient
        if isinstance(error, (ValidationError, NotImplementedError, TypeError)):
            return False
        return True
