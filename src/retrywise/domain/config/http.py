"""HTTP configuration model."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class HttpConfig(BaseModel):
    """HTTP settings used by the probe command.

    Attributes:
        base_url: Base URL joined to relative probe paths
        timeout: Per-attempt request timeout in seconds
        headers: Extra request headers
    """

    base_url: Optional[str] = None
    timeout: float = Field(10.0, gt=0.0, le=300.0)
    headers: Dict[str, str] = Field(default_factory=dict)
