from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SUCCESSION_", env_file=".env", extra="ignore")

    # Coordination backend: "zookeeper" or "memory"
    backend: str = "zookeeper"
    zookeeper_hosts: str = Field(default="localhost:2181", min_length=1)
    session_timeout: float = 3.0
    request_timeout: float = 10.0

    # Election namespace
    parent_path: str = "/contest"
    node_prefix: str = "contestant"

    # Leadership hold interval bounds, in seconds
    hold_min: float = 5.0
    hold_max: float = 10.0
    retry_delay: float = 0.5

    # Extra scheduler slots on top of one per contestant
    pool_slack: int = 1

    # Latency harness paths are "<latency_root>/<i>"
    latency_root: str = ""

    # Observability
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()


@dataclass(frozen=True)
class ContestConfig:
    """Configuration handed to every contestant, group and harness."""

    backend: str = "zookeeper"
    zookeeper_hosts: str = "localhost:2181"
    session_timeout: float = 3.0
    request_timeout: float = 10.0
    parent_path: str = "/contest"
    node_prefix: str = "contestant"
    hold_min: float = 5.0
    hold_max: float = 10.0
    retry_delay: float = 0.5
    pool_slack: int = 1
    latency_root: str = ""

    def __post_init__(self) -> None:
        if not self.parent_path.startswith("/") or self.parent_path == "/":
            raise ValueError(f"parent_path must be an absolute non-root path: {self.parent_path!r}")
        if self.hold_min < 0 or self.hold_max < self.hold_min:
            raise ValueError(
                f"Invalid hold interval bounds: min={self.hold_min}, max={self.hold_max}"
            )
        if self.pool_slack < 0:
            raise ValueError(f"pool_slack must be non-negative: {self.pool_slack}")

    @property
    def node_path(self) -> str:
        """Path passed to the service when registering an election node."""
        return f"{self.parent_path}/{self.node_prefix}"

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> ContestConfig:
        source = source or settings
        return cls(
            backend=source.backend,
            zookeeper_hosts=source.zookeeper_hosts,
            session_timeout=source.session_timeout,
            request_timeout=source.request_timeout,
            parent_path=source.parent_path,
            node_prefix=source.node_prefix,
            hold_min=source.hold_min,
            hold_max=source.hold_max,
            retry_delay=source.retry_delay,
            pool_slack=source.pool_slack,
            latency_root=source.latency_root.rstrip("/"),
        )
