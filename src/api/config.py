"""API Configuration.

Settings for the alerting REST API.
"""

from dataclasses import dataclass, field


@dataclass
class APIConfig:
    """Core API settings."""

    title: str = "SKC Alerting API"
    version: str = "1.0.0"
    description: str = "Alert rules, escalation policies and alert lifecycle"
    prefix: str = "/api/v1"
    docs_url: str = "/docs"
    cors_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:3000",   # Admin dashboard
        "http://localhost:8000",   # API self-reference
    ])
    cors_methods: list[str] = field(default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"])
    cors_headers: list[str] = field(default_factory=lambda: ["*"])
    max_page_size: int = 500
    default_page_size: int = 100


DEFAULT_API_CONFIG = APIConfig()
