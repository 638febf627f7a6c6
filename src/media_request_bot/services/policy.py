"""System-wide approval policy."""

import logging
from dataclasses import dataclass
from typing import Protocol

from media_request_bot.domain.approvals import ApprovalPolicy

_logger = logging.getLogger(__name__)

APPROVAL_POLICY_KEY = "approval_policy"


class SettingsRepository(Protocol):
    """Persistence interface for application settings."""

    def get_setting(self, key: str) -> str | None:
        """Return a stored setting value if present."""

    def set_setting(self, key: str, value: str) -> None:
        """Create or update a setting value."""


@dataclass
class PolicyService:
    """Reads and updates the approval policy, falling back to a default."""

    repository: SettingsRepository
    default_policy: ApprovalPolicy = ApprovalPolicy.AUTO_APPROVE

    def get_approval_policy(self) -> ApprovalPolicy:
        """Return the stored policy, or the default when unset or invalid."""
        raw = self.repository.get_setting(APPROVAL_POLICY_KEY)
        if raw is None:
            return self.default_policy
        try:
            return ApprovalPolicy(raw)
        except ValueError:
            _logger.warning(
                "Ignoring invalid stored approval policy: %s", raw
            )
            return self.default_policy

    def set_approval_policy(self, policy: ApprovalPolicy) -> None:
        """Persist the approval policy."""
        self.repository.set_setting(APPROVAL_POLICY_KEY, policy.value)
        _logger.info("Approval policy updated: %s", policy.value)
