"""Main application configuration model."""

from pydantic import BaseModel, ConfigDict, Field

from retrywise.domain.config.http import HttpConfig
from retrywise.domain.config.retry import RetryProfilesConfig


class AppConfig(BaseModel):
    """Main application configuration.

    Root model aggregating all configuration sections. Validation is performed
    at load time to fail fast on configuration errors.

    Attributes:
        retry: Retry profiles (default, data_access, auth, dashboard)
        http: HTTP settings
    """

    retry: RetryProfilesConfig = Field(default_factory=RetryProfilesConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "retry": {
                    "default": {
                        "max_retries": 3,
                        "base_delay": 0.5,
                        "max_delay": 5.0,
                        "backoff_factor": 2.0,
                    },
                    "auth": {"max_retries": 2, "base_delay": 1.0},
                    "dashboard": {"max_retries": 1, "base_delay": 0.2, "max_delay": 1.0},
                },
                "http": {
                    "base_url": "http://localhost:3001/api",
                    "timeout": 10.0,
                },
            }
        },
    )
