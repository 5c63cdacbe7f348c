"""Pytest configuration: service modules on sys.path, fake clock and scripted model."""

import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

_root = Path(__file__).resolve().parents[1]
_service = _root / "services" / "route-discovery-service"
sys.path.insert(0, str(_root))
sys.path.insert(0, str(_service))

from packages.shared.llm_provider import ModelTurn, StopReason, ToolCall  # noqa: E402


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    def set(self, ms: float) -> None:
        self.now_ms = ms


def final_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text, tool_calls=(), stop_reason=StopReason.END_TURN)


def tool_turn(*calls: Union[ToolCall, tuple], text: str = "") -> ModelTurn:
    built = []
    for i, c in enumerate(calls):
        if isinstance(c, ToolCall):
            built.append(c)
        else:
            name, args = c
            built.append(ToolCall(id=f"call_{i}", name=name, arguments=args, raw_arguments=""))
    return ModelTurn(text=text, tool_calls=tuple(built), stop_reason=StopReason.TOOL_USE)


class ScriptedModel:
    """Returns queued turns in order; a callable script is asked for every turn."""

    def __init__(self, script: Union[Sequence[ModelTurn], Callable[[int], ModelTurn]]):
        self.script = script
        self.calls: List[List[Dict[str, Any]]] = []
        self.tools_seen: Optional[Sequence[Dict[str, Any]]] = None

    async def invoke(self, messages, tools) -> ModelTurn:
        self.calls.append(list(messages))
        self.tools_seen = tools
        index = len(self.calls) - 1
        if callable(self.script):
            return self.script(index)
        return self.script[index]

    @property
    def invocations(self) -> int:
        return len(self.calls)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start_ms=1_000_000.0)


@pytest.fixture
def dataset():
    from search.cities import default_dataset

    return default_dataset()


def _get_base_url() -> str:
    """Resolve route discovery service base URL from environment."""
    url = os.environ.get("ROUTE_DISCOVERY_URL") or os.environ.get("API_BASE_URL")
    if not url:
        pytest.skip(
            "ROUTE_DISCOVERY_URL or API_BASE_URL must be set for server tests. "
            "Example: export ROUTE_DISCOVERY_URL=http://localhost:8010"
        )
    return url.rstrip("/")


@pytest.fixture(scope="session")
def base_url() -> str:
    """Base URL for a running route discovery service (from env)."""
    return _get_base_url()
