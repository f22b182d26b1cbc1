"""Tests for settings and election configuration."""

from __future__ import annotations

import pytest

from succession.config import ContestConfig, Settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.backend == "zookeeper"
        assert settings.parent_path == "/contest"
        assert settings.hold_min == 5.0
        assert settings.hold_max == 10.0

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """SUCCESSION_* variables override defaults."""
        monkeypatch.setenv("SUCCESSION_ZOOKEEPER_HOSTS", "zk1:2181,zk2:2181")
        monkeypatch.setenv("SUCCESSION_HOLD_MIN", "1.5")
        monkeypatch.setenv("SUCCESSION_LATENCY_ROOT", "/bench/")

        config = ContestConfig.from_settings(Settings())

        assert config.zookeeper_hosts == "zk1:2181,zk2:2181"
        assert config.hold_min == 1.5
        assert config.latency_root == "/bench"


class TestContestConfig:
    """Tests for ContestConfig validation."""

    def test_node_path(self) -> None:
        config = ContestConfig(parent_path="/election", node_prefix="member")
        assert config.node_path == "/election/member"

    @pytest.mark.parametrize("parent_path", ["/", "contest", ""])
    def test_rejects_bad_parent_path(self, parent_path: str) -> None:
        with pytest.raises(ValueError):
            ContestConfig(parent_path=parent_path)

    def test_rejects_inverted_hold_bounds(self) -> None:
        with pytest.raises(ValueError):
            ContestConfig(hold_min=10.0, hold_max=5.0)

    def test_rejects_negative_slack(self) -> None:
        with pytest.raises(ValueError):
            ContestConfig(pool_slack=-1)
