"""Tests for FabricAdapter."""

from unittest.mock import MagicMock, patch

import pytest
from paramiko.ssh_exception import SSHException

from fakes import make_host
from nixmorph.domain.errors import ActivationError, ConnectivityError
from nixmorph.domain.value_objects.deploy_action import DeployAction
from nixmorph.infrastructure.adapters.fabric_adapter import (
    BOOT_ID_PATH,
    SYSTEM_PROFILE,
    FabricAdapter,
)
from nixmorph.infrastructure.config import SSHConfig

CONNECTION = "nixmorph.infrastructure.adapters.fabric_adapter.Connection"
CLOSURE = "/nix/store/abc-nixos-system-web1"


def run_result(exited=0, stdout="", stderr=""):
    result = MagicMock()
    result.exited = exited
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestConnection:
    def test_get_connection(self):
        adapter = FabricAdapter()
        host = make_host("web1", target_host="10.0.0.1", target_user="deploy", target_port=2222)
        with patch(CONNECTION) as mock_conn_cls:
            adapter._get_connection(host)
            mock_conn_cls.assert_called_once_with(
                host="10.0.0.1",
                user="deploy",
                port=2222,
                connect_timeout=30,
                connect_kwargs={"allow_agent": True, "look_for_keys": True},
            )

    def test_defaults_are_left_to_ssh(self):
        adapter = FabricAdapter(SSHConfig(identity_file="/keys/id", connect_timeout=5))
        with patch(CONNECTION) as mock_conn_cls:
            adapter._get_connection(make_host("web1"))
            kwargs = mock_conn_cls.call_args.kwargs
            assert kwargs["host"] == "web1"
            assert kwargs["user"] is None
            assert kwargs["port"] is None
            assert kwargs["connect_timeout"] == 5
            assert kwargs["connect_kwargs"]["key_filename"] == "/keys/id"

    def test_ssh_config_file(self):
        adapter = FabricAdapter(SSHConfig(config_file="/etc/ssh/fleet_config"))
        with patch(CONNECTION) as mock_conn_cls, patch(
            "nixmorph.infrastructure.adapters.fabric_adapter.Config"
        ) as mock_config_cls:
            adapter._get_connection(make_host("web1"))
            mock_config_cls.assert_called_once_with(runtime_ssh_path="/etc/ssh/fleet_config")
            assert mock_conn_cls.call_args.kwargs["config"] is mock_config_cls.return_value


class TestRun:
    @pytest.mark.asyncio
    async def test_run_quotes_argv(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            conn = mock_conn_cls.return_value
            conn.run.return_value = run_result(0, "a b\n")

            result = await adapter.run(make_host("web1"), "echo", "a b")

        assert result.ok
        assert result.stdout == "a b\n"
        conn.run.assert_called_once_with("echo 'a b'", hide=True, warn=True, in_stream=False)
        conn.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            conn = mock_conn_cls.return_value
            conn.open.side_effect = OSError("No route to host")

            with pytest.raises(ConnectivityError, match="No route to host"):
                await adapter.run(make_host("web1"), "true")
            conn.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_dropped_connection_is_exit_255(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.side_effect = SSHException("Server closed")
            result = await adapter.run(make_host("web1"), "sudo", "reboot")

        assert result.exit_status == 255
        assert result.disconnected

    @pytest.mark.asyncio
    async def test_missing_exit_status_is_exit_255(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.return_value = run_result(-1)
            result = await adapter.run(make_host("web1"), "sudo", "reboot")

        assert result.exit_status == 255


class TestActivation:
    def test_switch_sets_profile_first(self):
        adapter = FabricAdapter()
        host = make_host("web1", target_user="deploy")
        assert adapter.activation_commands(host, CLOSURE, DeployAction.SWITCH) == [
            ["sudo", "nix-env", "--profile", SYSTEM_PROFILE, "--set", CLOSURE],
            ["sudo", f"{CLOSURE}/bin/switch-to-configuration", "switch"],
        ]

    def test_test_action_leaves_profile_alone(self):
        adapter = FabricAdapter(SSHConfig(default_user="root"))
        assert adapter.activation_commands(make_host("web1"), CLOSURE, DeployAction.TEST) == [
            [f"{CLOSURE}/bin/switch-to-configuration", "test"],
        ]

    def test_no_sudo_when_disabled(self):
        adapter = FabricAdapter(SSHConfig(use_sudo=False))
        commands = adapter.activation_commands(make_host("web1"), CLOSURE, DeployAction.BOOT)
        assert all(argv[0] != "sudo" for argv in commands)

    @pytest.mark.asyncio
    async def test_activate_failure(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.side_effect = [
                run_result(0),
                run_result(4, stderr="warning: the following units failed: nginx.service\n"),
            ]
            with pytest.raises(ActivationError, match="nginx.service"):
                await adapter.activate(make_host("web1"), CLOSURE, DeployAction.SWITCH)

    @pytest.mark.asyncio
    async def test_activate_success(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.return_value = run_result(0)
            await adapter.activate(make_host("web1"), CLOSURE, DeployAction.SWITCH)
            assert mock_conn_cls.return_value.run.call_count == 2


class TestBootId:
    @pytest.mark.asyncio
    async def test_get_boot_id(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            conn = mock_conn_cls.return_value
            conn.run.return_value = run_result(0, "5f0c2a1e-0000-4000-8000-000000000001\n")
            boot_id = await adapter.get_boot_id(make_host("web1"))

        assert boot_id == "5f0c2a1e-0000-4000-8000-000000000001"
        conn.run.assert_called_once_with(
            f"cat {BOOT_ID_PATH}", hide=True, warn=True, in_stream=False
        )

    @pytest.mark.asyncio
    async def test_unreadable_boot_id(self):
        adapter = FabricAdapter()
        with patch(CONNECTION) as mock_conn_cls:
            mock_conn_cls.return_value.run.return_value = run_result(1)
            with pytest.raises(ConnectivityError):
                await adapter.get_boot_id(make_host("web1"))
