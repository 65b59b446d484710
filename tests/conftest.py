"""Test fixtures for synpick tests."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from synpick.models import ModelRecord


class FakeClock:
    """Settable clock for cache TTL tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeTimer:
    """Stands in for loop.call_later: records the callback instead of scheduling it."""

    def __init__(self):
        self.callback = None
        self.delay = None
        self.handle = Mock()

    def __call__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        return self.handle


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_timer():
    return FakeTimer()


@pytest.fixture
def raw_models():
    """Raw catalog entries as the API returns them."""
    return [
        {
            "id": "hf:deepseek-ai/DeepSeek-V3",
            "object": "model",
            "name": "DeepSeek V3",
            "context_length": 128000,
            "pricing": {"prompt": "$0.00000125", "completion": "$0.00000125"},
            "quantization": "fp8",
        },
        {
            "id": "hf:Qwen/Qwen3-Coder-480B-A35B-Instruct",
            "object": "model",
            "name": "Qwen3 Coder",
            "context_length": 256000,
            "supported_features": ["tools", "json_mode"],
        },
        {
            "id": "anthropic:claude-sonnet-4",
            "object": "model",
            "owned_by": "anthropic",
        },
    ]


@pytest.fixture
def mock_api_response(raw_models):
    return {"object": "list", "data": raw_models}


@pytest.fixture
def sample_models():
    return [
        ModelRecord(id="hf:zai-org/GLM-4.6", display_name="GLM 4.6", context_length=200000),
        ModelRecord(id="anthropic:claude-opus-4", display_name="Claude Opus 4"),
        ModelRecord(id="hf:moonshotai/Kimi-K2-Instruct", display_name="Kimi K2", quantization="fp8"),
        ModelRecord(id="openai:gpt-oss-120b", provider="openai"),
    ]


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "synpick" / "models_cache.json"


@pytest.fixture
def write_cache_file(cache_path):
    """Write a snapshot file with an arbitrary timestamp."""

    def _write(models, timestamp, count=None):
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "models": models,
            "timestamp": timestamp.isoformat() if isinstance(timestamp, datetime) else timestamp,
            "count": len(models) if count is None else count,
        }
        cache_path.write_text(json.dumps(data), encoding="utf-8")
        return cache_path

    return _write


@pytest.fixture
def mock_httpx_client():
    """Patch httpx.AsyncClient; yields (client, response)."""
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client

        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.text = ""
        mock_client.get.return_value = mock_response
        yield mock_client, mock_response


@pytest.fixture
def mock_process():
    """A spawned process as returned by asyncio.create_subprocess_exec."""
    process = Mock()
    process.pid = 4321
    process.returncode = 0
    process.communicate = AsyncMock(return_value=(b"2.0.76 (Claude Code)\n", b""))
    process.wait = AsyncMock(return_value=0)
    return process


@pytest.fixture
def mock_spawn(mock_process):
    with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as spawn:
        spawn.return_value = mock_process
        yield spawn


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    return tmp_path / "config"
