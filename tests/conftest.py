"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from kkp.models import TCP, UDP, Listener


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def config_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "config.yaml"


@pytest.fixture
def node_listener() -> Listener:
    return Listener(protocol=TCP, port=3000, pid=4242, process_name="node")


@pytest.fixture
def systemd_listener() -> Listener:
    return Listener(protocol=TCP, port=80, pid=1, process_name="systemd")


@pytest.fixture
def mixed_listeners() -> list[Listener]:
    return [
        Listener(protocol=TCP, port=5173, pid=5000, process_name="vite", local_address="127.0.0.1"),
        Listener(protocol=UDP, port=5353, pid=2288, process_name="mdnsd", local_address="0.0.0.0"),
        Listener(protocol=TCP, port=3000, pid=4242, process_name="node", local_address="0.0.0.0"),
    ]
