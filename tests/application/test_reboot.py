"""Tests for the boot-id reboot protocol."""

from unittest.mock import AsyncMock

import pytest

from fakes import FakeRemote, make_host
from nixmorph.application.orchestration.reboot import (
    REBOOT_COMMAND,
    RebootOutcome,
    reboot_host,
    wait_for_new_boot_id,
)
from nixmorph.domain.errors import ConnectivityError, RebootError, RebootTimeout
from nixmorph.domain.value_objects.remote_result import RemoteResult


@pytest.fixture
def host():
    return make_host("web1")


class TestRebootHost:
    @pytest.mark.asyncio
    async def test_waits_for_a_new_boot_id(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old", "", ConnectivityError("down"), "old", "new"]

        outcome = await reboot_host(remote, host, poll_interval=0)

        assert outcome is RebootOutcome.CONFIRMED
        assert remote.boot_id_calls["web1"] == 5
        assert ("web1", REBOOT_COMMAND) in remote.commands

    @pytest.mark.asyncio
    async def test_disconnect_counts_as_success(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old", "new"]
        remote.script("web1", REBOOT_COMMAND, RemoteResult("", 255, "Connection closed"))

        assert await reboot_host(remote, host, poll_interval=0) is RebootOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_clean_exit_counts_as_success(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old", "new"]
        remote.script("web1", REBOOT_COMMAND, RemoteResult("", 0))

        assert await reboot_host(remote, host, poll_interval=0) is RebootOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_other_exit_status_is_an_error(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old"]
        remote.script("web1", REBOOT_COMMAND, RemoteResult("", 1, "sudo: a password is required"))

        with pytest.raises(RebootError, match="password is required"):
            await reboot_host(remote, host, poll_interval=0)
        assert remote.boot_id_calls["web1"] == 1

    @pytest.mark.asyncio
    async def test_unreadable_boot_id_skips_the_wait(self, host):
        remote = FakeRemote()

        outcome = await reboot_host(remote, host, poll_interval=0)

        assert outcome is RebootOutcome.UNSUPPORTED
        assert remote.boot_id_calls["web1"] == 1
        assert ("web1", REBOOT_COMMAND) in remote.commands

    @pytest.mark.asyncio
    async def test_empty_boot_id_is_treated_as_unsupported(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = [""]

        assert await reboot_host(remote, host, poll_interval=0) is RebootOutcome.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_unreachable_host_is_a_reboot_error(self, host):
        remote = AsyncMock()
        remote.get_boot_id.return_value = "old"
        remote.run.side_effect = ConnectivityError("connection refused")

        with pytest.raises(RebootError, match="connection refused"):
            await reboot_host(remote, host, poll_interval=0)

    @pytest.mark.asyncio
    async def test_custom_command(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old", "new"]

        await reboot_host(remote, host, poll_interval=0, command=("systemctl", "reboot"))
        assert ("web1", ("systemctl", "reboot")) in remote.commands

    @pytest.mark.asyncio
    async def test_timeout(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["old"]

        with pytest.raises(RebootTimeout) as exc_info:
            await reboot_host(remote, host, poll_interval=0.01, timeout=0.05)
        assert exc_info.value.host == "web1"


class TestWaitForNewBootId:
    @pytest.mark.asyncio
    async def test_returns_the_new_id(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["", "same", "fresh"]

        assert await wait_for_new_boot_id(remote, host, "same", poll_interval=0) == "fresh"
        assert remote.boot_id_calls["web1"] == 3

    @pytest.mark.asyncio
    async def test_ignores_empty_and_repeated_ids(self, host):
        remote = FakeRemote()
        remote.boot_ids["web1"] = ["", "", "a", "b", "c"]

        assert await wait_for_new_boot_id(remote, host, "a", poll_interval=0) == "b"
        assert remote.boot_id_calls["web1"] == 4
