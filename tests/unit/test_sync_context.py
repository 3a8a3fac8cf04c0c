"""Tests for workspace and identity resolution."""
from unittest.mock import AsyncMock

import pytest

from asanadw.config import Settings
from asanadw.models.warehouse import User
from asanadw.sync.context import (
    ConfigurationError,
    SyncContext,
    ensure_user_identity,
    resolve_context,
)
from conftest import make_user


@pytest.fixture
def unset_settings():
    return Settings(_env_file=None, asana_access_token="t", workspace_gid=None)


class TestResolveContext:
    @pytest.mark.asyncio
    async def test_settings_win(self, repository, settings, no_wait):
        client = AsyncMock()
        context = await resolve_context(client, repository, settings, no_wait)
        assert context == SyncContext(workspace_gid="1000")
        client.list_workspaces.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_workspace_detected_and_cached(self, repository, unset_settings, no_wait):
        client = AsyncMock()
        client.list_workspaces = AsyncMock(return_value=[{"gid": "42", "name": "Acme"}])

        context = await resolve_context(client, repository, unset_settings, no_wait)
        assert context.workspace_gid == "42"
        assert repository.get_config("workspace_gid") == "42"

        await resolve_context(client, repository, unset_settings, no_wait)
        client.list_workspaces.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_several_workspaces_is_configuration_error(self, repository, unset_settings, no_wait):
        client = AsyncMock()
        client.list_workspaces = AsyncMock(return_value=[
            {"gid": "1", "name": "Acme"},
            {"gid": "2", "name": "Side project"},
        ])
        with pytest.raises(ConfigurationError, match="found 2"):
            await resolve_context(client, repository, unset_settings, no_wait)

    @pytest.mark.asyncio
    async def test_no_workspace_is_configuration_error(self, repository, unset_settings, no_wait):
        client = AsyncMock()
        client.list_workspaces = AsyncMock(return_value=[])
        with pytest.raises(ConfigurationError):
            await resolve_context(client, repository, unset_settings, no_wait)


class TestEnsureUserIdentity:
    @pytest.mark.asyncio
    async def test_fetches_and_caches_me(self, repository, test_session, no_wait):
        client = AsyncMock()
        client.get_me = AsyncMock(return_value=make_user("77", "Me", email="me@example.com"))

        assert await ensure_user_identity(client, repository, no_wait) == "77"
        assert await ensure_user_identity(client, repository, no_wait) == "77"

        client.get_me.assert_awaited_once()
        assert repository.get_config("user_email") == "me@example.com"
        assert test_session.get(User, "77").name == "Me"
