"""Retry configuration models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from retrywise.domain.policies import PREDICATES, RetryPolicy, RetryPredicate, is_transient


class RetryConfig(BaseModel):
    """Configuration for one retry profile.

    Attributes:
        max_retries: Additional attempts after the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound of any delay, in seconds
        backoff_factor: Exponential backoff multiplier
    """

    max_retries: int = Field(3, ge=0, le=10)
    base_delay: float = Field(0.5, gt=0.0)
    max_delay: float = Field(5.0, gt=0.0)
    backoff_factor: float = Field(2.0, ge=1.0, le=10.0)

    model_config = ConfigDict(extra="forbid")

    def to_policy(
        self, name: str = "default", predicate: Optional[RetryPredicate] = None
    ) -> RetryPolicy:
        """Build a runtime RetryPolicy from this profile"""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_factor=self.backoff_factor,
            retry_predicate=predicate or PREDICATES.get(name, is_transient),
            name=name,
        )


class RetryProfilesConfig(BaseModel):
    """Retry profiles for each call-site family"""

    default: RetryConfig = Field(default_factory=RetryConfig)
    data_access: RetryConfig = Field(default_factory=RetryConfig)
    auth: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_retries=2, base_delay=1.0, max_delay=5.0)
    )
    dashboard: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_retries=1, base_delay=0.2, max_delay=1.0)
    )

    model_config = ConfigDict(extra="forbid")
