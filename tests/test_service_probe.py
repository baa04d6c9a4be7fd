"""Unit tests for V2Ray process and service-manager probes."""
# pyright: reportUnknownParameterType=false, reportMissingParameterType=false

import subprocess
import unittest
from unittest.mock import MagicMock, patch

import psutil

from anywhere_agent.errors import DeploymentError, ProcessProbeError
from anywhere_agent.v2ray import service


def _proc(pid: int, name: str, cmdline: list[str]) -> MagicMock:
    proc = MagicMock()
    proc.info = {"pid": pid, "name": name, "cmdline": cmdline}
    return proc


class TestRun(unittest.TestCase):
    """Test the command runner."""

    @patch("anywhere_agent.v2ray.service.subprocess.run")
    def test_combined_output(self, mock_run: MagicMock) -> None:
        """stdout and stderr are concatenated."""
        mock_run.return_value = subprocess.CompletedProcess(["x"], 0, stdout="out", stderr="err")

        self.assertEqual(service._run(["x"]), (0, "outerr"))

    @patch("anywhere_agent.v2ray.service.subprocess.run", side_effect=FileNotFoundError("systemctl"))
    def test_missing_binary(self, _mock_run: MagicMock) -> None:
        """A missing binary is reported as 127."""
        self.assertEqual(service._run(["systemctl", "is-active", "v2ray"]), (127, ""))

    @patch("anywhere_agent.v2ray.service.subprocess.run", side_effect=subprocess.TimeoutExpired("x", 30))
    def test_timeout(self, _mock_run: MagicMock) -> None:
        """A hung command is reported as 124."""
        self.assertEqual(service._run(["x"]), (124, ""))


class TestProcessProbe(unittest.TestCase):
    """Test the process table probe."""

    @patch("anywhere_agent.v2ray.service.psutil.process_iter")
    def test_process_found_by_cmdline(self, mock_iter: MagicMock) -> None:
        """A process whose command line mentions the service counts."""
        mock_iter.return_value = [
            _proc(10, "bash", ["bash"]),
            _proc(11, "v2ray", ["/usr/local/bin/v2ray", "run", "-config", "/usr/local/etc/v2ray/config.json"]),
        ]

        self.assertTrue(service.is_process_present("v2ray"))

    @patch("anywhere_agent.v2ray.service.psutil.process_iter")
    def test_no_process_is_normal_answer(self, mock_iter: MagicMock) -> None:
        """No match returns False instead of raising."""
        mock_iter.return_value = [_proc(10, "bash", ["bash"]), _proc(12, "sshd", None)]

        self.assertFalse(service.is_process_present("v2ray"))

    @patch("anywhere_agent.v2ray.service.os.getpid", return_value=42)
    @patch("anywhere_agent.v2ray.service.psutil.process_iter")
    def test_own_process_ignored(self, mock_iter: MagicMock, _mock_pid: MagicMock) -> None:
        """The agent's own process never counts as the service."""
        mock_iter.return_value = [_proc(42, "python", ["python", "-m", "anywhere_agent", "--v2ray"])]

        self.assertFalse(service.is_process_present("v2ray"))

    @patch("anywhere_agent.v2ray.service.psutil.process_iter", side_effect=psutil.AccessDenied())
    def test_probe_failure_raises(self, _mock_iter: MagicMock) -> None:
        """Failure to read the process table is a probe error."""
        with self.assertRaises(ProcessProbeError):
            service.is_process_present("v2ray")


class TestServiceProbe(unittest.TestCase):
    """Test service-manager probes with fallback."""

    @patch("anywhere_agent.v2ray.service._run")
    def test_systemctl_active(self, mock_run: MagicMock) -> None:
        """systemctl reporting active is enough."""
        mock_run.return_value = (0, "active\n")

        self.assertTrue(service.is_service_active("v2ray"))
        mock_run.assert_called_once_with(["systemctl", "is-active", "v2ray"])

    @patch("anywhere_agent.v2ray.service._run")
    def test_service_command_fallback(self, mock_run: MagicMock) -> None:
        """Without systemd, the SysV service command is consulted."""
        mock_run.side_effect = [(127, ""), (0, "v2ray is running")]

        self.assertTrue(service.is_service_active("v2ray"))

    @patch("anywhere_agent.v2ray.service._run", return_value=(127, ""))
    def test_no_service_manager(self, _mock_run: MagicMock) -> None:
        """No manager available yields None."""
        self.assertIsNone(service.is_service_active("v2ray"))

    @patch("anywhere_agent.v2ray.service.is_process_present", return_value=True)
    @patch("anywhere_agent.v2ray.service.is_service_active", return_value=None)
    def test_running_falls_back_to_process_table(self, _mock_active: MagicMock, _mock_present: MagicMock) -> None:
        """A live process counts as running when no manager answers."""
        self.assertTrue(service.is_service_running("v2ray"))

    @patch("anywhere_agent.v2ray.service.is_process_present", side_effect=ProcessProbeError("boom"))
    @patch("anywhere_agent.v2ray.service.is_service_active", return_value=False)
    def test_running_swallows_probe_failure(self, _mock_active: MagicMock, _mock_present: MagicMock) -> None:
        """The running check answers False rather than raising."""
        self.assertFalse(service.is_service_running("v2ray"))

    @patch("anywhere_agent.v2ray.service._run", return_value=(0, "V2Ray 5.16.1 (V2Fly, a community-driven edition of V2Ray.)\nA unified platform\n"))
    def test_version_first_line(self, _mock_run: MagicMock) -> None:
        """The first line of --version output is the version."""
        self.assertEqual(service.get_version("v2ray"), "V2Ray 5.16.1 (V2Fly, a community-driven edition of V2Ray.)")

    @patch("anywhere_agent.v2ray.service._run", return_value=(127, ""))
    def test_version_unknown(self, _mock_run: MagicMock) -> None:
        """A failed version probe reports unknown."""
        self.assertEqual(service.get_version("v2ray"), "unknown")

    @patch("anywhere_agent.v2ray.service.is_process_present", return_value=False)
    def test_not_installed(self, _mock_present: MagicMock) -> None:
        """No process means not installed and no version."""
        self.assertEqual(service.check_installed("v2ray"), (False, ""))

    @patch("anywhere_agent.v2ray.service.is_service_running", return_value=True)
    @patch("anywhere_agent.v2ray.service.get_version", return_value="V2Ray 5.16.1")
    @patch("anywhere_agent.v2ray.service.is_process_present", return_value=True)
    def test_service_status(self, _mock_present: MagicMock, _mock_version: MagicMock, _mock_running: MagicMock) -> None:
        """The live status is fully populated."""
        status = service.get_service_status("v2ray")

        self.assertTrue(status.installed)
        self.assertTrue(status.running)
        self.assertEqual(status.version, "V2Ray 5.16.1")
        self.assertEqual(status.progress, 100)


class TestServiceControl(unittest.TestCase):
    """Test start and autostart helpers."""

    @patch("anywhere_agent.v2ray.service._run", return_value=(0, ""))
    def test_start_with_systemctl(self, mock_run: MagicMock) -> None:
        """systemctl is tried first."""
        self.assertEqual(service.start_service("v2ray"), "systemctl")
        mock_run.assert_called_once_with(["systemctl", "start", "v2ray"])

    @patch("anywhere_agent.v2ray.service._run")
    def test_start_falls_back_to_service(self, mock_run: MagicMock) -> None:
        """The SysV service command is the fallback."""
        mock_run.side_effect = [(1, "Failed"), (0, "")]

        self.assertEqual(service.start_service("v2ray"), "service")
        self.assertEqual(mock_run.call_args_list[1].args[0], ["service", "v2ray", "start"])

    @patch("anywhere_agent.v2ray.service._run")
    def test_start_all_fail(self, mock_run: MagicMock) -> None:
        """Both mechanisms failing is a deployment error."""
        mock_run.side_effect = [(1, "Failed"), (1, "v2ray: unrecognized service")]

        with self.assertRaises(DeploymentError) as ctx:
            service.start_service("v2ray")

        self.assertIn("unrecognized service", str(ctx.exception))

    @patch("anywhere_agent.v2ray.service._run")
    def test_autostart_chkconfig_fallback(self, mock_run: MagicMock) -> None:
        """chkconfig is used when systemctl enable fails."""
        mock_run.side_effect = [(1, ""), (0, "")]

        ok, msg = service.enable_autostart("v2ray")

        self.assertTrue(ok)
        self.assertIn("chkconfig", msg)

    @patch("anywhere_agent.v2ray.service._run", return_value=(127, ""))
    def test_autostart_best_effort(self, _mock_run: MagicMock) -> None:
        """Autostart failure is reported, not raised."""
        ok, msg = service.enable_autostart("v2ray")

        self.assertFalse(ok)
        self.assertIn("Failed to enable", msg)


if __name__ == "__main__":
    unittest.main()
