"""Tests for perch.config - HostConfig defaults and immutability."""

import dataclasses

import pytest

from perch.config import HostConfig


class TestHostConfig:
    def test_defaults(self) -> None:
        config = HostConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.debug is False
        assert config.offload_activation is True
        assert config.max_content_length == 16 * 1024 * 1024

    def test_override(self) -> None:
        config = HostConfig(port=3000, offload_activation=False)
        assert config.port == 3000
        assert config.offload_activation is False

    def test_frozen(self) -> None:
        config = HostConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 1  # type: ignore[misc]
