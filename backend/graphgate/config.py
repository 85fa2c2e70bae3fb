"""
GraphGate Application Configuration
Graph store, session and access decision policy settings
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings

# Routes that bypass the access decision pipeline entirely
DEFAULT_PUBLIC_PATHS = [
    # Authentication
    r"^/auth(/.*)?$",
    r"^/login(/.*)?$",
    r"^/register(/.*)?$",
    # Health and status
    r"^/health(/.*)?$",
    r"^/healthz$",
    r"^/readiness$",
    r"^/status(/.*)?$",
    r"^/metrics$",
    # Static files
    r"^/static(/.*)?$",
    r"^/assets(/.*)?$",
    r"^/images(/.*)?$",
    r"^/favicon\.ico$",
    # Documentation
    r"^/docs(/.*)?$",
    r"^/api-docs(/.*)?$",
    r"^/openapi\.json$",
    # Other
    r"^/$",
    r"^/public(/.*)?$",
]


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "GraphGate"
    app_version: str = "1.0.0"
    debug: bool = False

    # Logging
    log_level: str = "INFO"

    # Graph store (Neo4j)
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "neo4j"
    neo4j_database: str = "neo4j"
    neo4j_max_pool_size: int = 50
    neo4j_connection_acquisition_timeout: float = 5.0
    query_timeout_seconds: float = 2.0
    initialize_graph_schema: bool = False

    # Access decision policy
    public_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_PUBLIC_PATHS))
    suspicious_policy: str = Field(default="block", description="block | step_up")
    serialize_per_identity: bool = False
    audit_in_background: bool = False

    # Sessions
    session_backend: str = Field(default="memory", description="memory | redis")
    session_cookie_name: str = "graphgate_session"
    session_header_name: str = "X-Session-Id"
    session_ttl_seconds: int = 3600
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: Optional[str] = "graphgate:session:"

    @validator("neo4j_uri")
    def validate_neo4j_uri(cls, v):
        if not v.startswith(("bolt://", "bolt+s://", "bolt+ssc://", "neo4j://", "neo4j+s://", "neo4j+ssc://")):
            raise ValueError("Neo4j URI must use the bolt:// or neo4j:// scheme")
        return v

    @validator("query_timeout_seconds", "neo4j_connection_acquisition_timeout")
    def timeout_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("Timeouts must be greater than zero")
        return v

    @validator("suspicious_policy")
    def validate_suspicious_policy(cls, v):
        if v not in ("block", "step_up"):
            raise ValueError("suspicious_policy must be 'block' or 'step_up'")
        return v

    @validator("session_backend")
    def validate_session_backend(cls, v):
        if v not in ("memory", "redis"):
            raise ValueError("session_backend must be 'memory' or 'redis'")
        return v

    class Config:
        env_file = ".env"
        env_prefix = "GRAPHGATE_"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings"""
    return Settings()
