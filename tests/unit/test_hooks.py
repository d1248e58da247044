"""Unit tests for bounded hook invocation."""

from __future__ import annotations

import asyncio

import pytest

from autodeploy.errors import ResolutionError, ResolutionErrorKind, ResolutionStage
from autodeploy.hooks import invoke_hook


@pytest.mark.asyncio
async def test_sync_hook_result_is_returned() -> None:
    """Plain callables run off the loop and their result comes back."""
    result = await invoke_hook(
        lambda stage: {"stage": stage},
        "production",
        stage=ResolutionStage.TARGET,
        timeout=1,
    )

    assert result == {"stage": "production"}


@pytest.mark.asyncio
async def test_async_hook_is_awaited() -> None:
    """Coroutine functions are awaited."""

    async def hook(stage: str) -> str:
        await asyncio.sleep(0)
        return stage.upper()

    result = await invoke_hook(hook, "pr-1", stage=ResolutionStage.RUNNER, timeout=1)

    assert result == "PR-1"


@pytest.mark.asyncio
async def test_hook_is_called_exactly_once() -> None:
    """The hook runs once per invocation; there is no retry."""
    calls: list[str] = []

    def hook(stage: str) -> None:
        calls.append(stage)
        msg = "nope"
        raise RuntimeError(msg)

    with pytest.raises(ResolutionError):
        await invoke_hook(hook, "production", stage=ResolutionStage.RUNNER, timeout=1)

    assert calls == ["production"], "hook must not be retried"


@pytest.mark.asyncio
async def test_raising_hook_is_wrapped() -> None:
    """Exceptions from the hook become USER_FUNCTION_THREW with the cause kept."""

    async def hook(_event: object) -> None:
        msg = "target lookup exploded"
        raise ValueError(msg)

    with pytest.raises(ResolutionError) as excinfo:
        await invoke_hook(hook, object(), stage=ResolutionStage.TARGET, timeout=1)

    assert excinfo.value.kind is ResolutionErrorKind.USER_FUNCTION_THREW
    assert excinfo.value.stage is ResolutionStage.TARGET
    assert isinstance(excinfo.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_slow_hook_times_out() -> None:
    """Hooks that exceed the deadline raise TIMEOUT."""

    async def hook(_stage: str) -> None:
        await asyncio.sleep(5)

    with pytest.raises(ResolutionError) as excinfo:
        await invoke_hook(
            hook, "production", stage=ResolutionStage.RUNNER, timeout=0.05
        )

    assert excinfo.value.kind is ResolutionErrorKind.TIMEOUT
    assert excinfo.value.stage is ResolutionStage.RUNNER


@pytest.mark.asyncio
async def test_hook_raising_timeout_error_is_not_a_deadline_timeout() -> None:
    """A TimeoutError raised by the hook itself counts as the hook failing."""

    async def hook(_stage: str) -> None:
        msg = "upstream API timed out"
        raise TimeoutError(msg)

    with pytest.raises(ResolutionError) as excinfo:
        await invoke_hook(hook, "production", stage=ResolutionStage.RUNNER, timeout=5)

    assert excinfo.value.kind is ResolutionErrorKind.USER_FUNCTION_THREW
