"""
Tests for graceful shutdown functionality.
"""

import asyncio

import pytest

from directory_api.main import GracefulShutdownManager


@pytest.mark.asyncio
async def test_shutdown_manager_initialization():
    """Test shutdown manager initializes correctly."""
    manager = GracefulShutdownManager()
    assert manager.is_shutting_down is False
    assert manager.active_requests == 0
    assert manager.shutdown_timeout == 30


@pytest.mark.asyncio
async def test_request_tracking():
    """Test request start/finish tracking."""
    manager = GracefulShutdownManager()

    manager.request_started()
    manager.request_started()
    assert manager.active_requests == 2

    manager.request_finished()
    manager.request_finished()
    assert manager.active_requests == 0


@pytest.mark.asyncio
async def test_shutdown_with_no_active_requests():
    """Test graceful shutdown completes immediately when no active requests."""
    manager = GracefulShutdownManager()

    loop = asyncio.get_running_loop()
    start = loop.time()
    await manager.initiate_shutdown()

    assert manager.is_shutting_down is True
    assert loop.time() - start < 1.0


@pytest.mark.asyncio
async def test_shutdown_waits_for_active_requests():
    """Test graceful shutdown waits for active requests to complete."""
    manager = GracefulShutdownManager()
    manager.request_started()

    shutdown_task = asyncio.create_task(manager.initiate_shutdown())
    await asyncio.sleep(0.1)

    assert not shutdown_task.done()
    assert manager.is_shutting_down is True

    manager.request_finished()
    await asyncio.wait_for(shutdown_task, timeout=1.0)


@pytest.mark.asyncio
async def test_shutdown_timeout():
    """Test graceful shutdown times out if requests take too long."""
    manager = GracefulShutdownManager()
    manager.shutdown_timeout = 0.5
    manager.request_started()

    loop = asyncio.get_running_loop()
    start = loop.time()
    await manager.initiate_shutdown()
    duration = loop.time() - start

    assert 0.4 < duration < 1.0
    assert manager.is_shutting_down is True


@pytest.mark.asyncio
async def test_shutdown_prevents_new_requests():
    """Test that new requests aren't counted during shutdown."""
    manager = GracefulShutdownManager()
    manager.is_shutting_down = True

    manager.request_started()

    assert manager.active_requests == 0


@pytest.mark.asyncio
async def test_multiple_shutdown_calls():
    """Test that calling initiate_shutdown multiple times is safe."""
    manager = GracefulShutdownManager()

    await manager.initiate_shutdown()
    await manager.initiate_shutdown()

    assert manager.is_shutting_down is True


@pytest.mark.asyncio
async def test_shutdown_integration(client, api_prefix, sample_signup):
    """Requests arriving during shutdown are rejected with 503 and Retry-After."""
    from directory_api.main import shutdown_manager

    response = await client.get("/health")
    assert response.status_code == 200

    original_state = shutdown_manager.is_shutting_down
    shutdown_manager.is_shutting_down = True

    try:
        response = await client.post(f"{api_prefix}/signup", json=sample_signup)
        assert response.status_code == 503
        assert "shutting down" in response.json()["message"].lower()
        assert "Retry-After" in response.headers
    finally:
        shutdown_manager.is_shutting_down = original_state


@pytest.mark.asyncio
async def test_task_queue_drained_on_stop(task_queue):
    """Queued background jobs finish before the workers are cancelled."""
    finished = []

    async def job():
        await asyncio.sleep(0.05)
        finished.append(True)

    for i in range(3):
        task_queue.submit(f"job-{i}", job)

    await task_queue.stop(timeout=5)

    assert finished == [True, True, True]
    assert task_queue.running is False


@pytest.mark.asyncio
async def test_lifespan_owns_task_queue(monkeypatch):
    """The queue started on startup is stopped on shutdown."""
    from unittest.mock import AsyncMock

    from fastapi import FastAPI

    from directory_api import main
    from directory_api.config import settings

    monkeypatch.setattr(settings, "CACHE_ENABLED", False)
    monkeypatch.setattr(main, "dispose_engine", AsyncMock())
    monkeypatch.setattr(main.shutdown_manager, "is_shutting_down", False)

    app = FastAPI()
    async with main.lifespan(app):
        service = app.state.account_service
        assert service.tasks.running is True

    assert service.tasks.running is False
    main.dispose_engine.assert_awaited_once()


def test_account_service_requires_lifespan():
    from types import SimpleNamespace

    from directory_api.dependencies import get_account_service

    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace()))

    with pytest.raises(RuntimeError, match="not initialized"):
        get_account_service(request)
