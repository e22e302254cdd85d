"""
Build/deploy supervision and device key-press test suite.

The build is a Python one-liner standing in for ``bsc --deploy``; the device
is a local ECP server.

Run with full visibility:
    pytest tests/test_deploy.py -v -s
"""

from __future__ import annotations

import asyncio
import io
import sys

import pytest

from roku_coverage_tools.deploy import DeployOutcome, DeploySupervisor
from roku_coverage_tools.device import send_home_keypress
from roku_coverage_tools.exceptions import DeployError
from roku_coverage_tools.manifest import ManifestHook

from servers import ECPTestServer, unused_port


def _report(label, detail=""):
    # type: (str, str) -> None
    if detail:
        print("  [{}] {}".format(label, detail))
    else:
        print("  [{}]".format(label))


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Deploy supervisor
# ═══════════════════════════════════════════════════════════════════════════

class TestDeploySupervisor:

    def test_output_forwarded_in_order(self, tmp_path):
        script = (
            "import sys\n"
            "for i in range(200):\n"
            "    print('line', i)\n"
            "sys.stderr.write('warning: café\\n')\n"
        )
        out, err = io.StringIO(), io.StringIO()
        supervisor = DeploySupervisor(
            [sys.executable, "-c", script], cwd=tmp_path, stdout=out, stderr=err,
        )

        outcome = asyncio.run(supervisor.run(context="test forward"))

        assert outcome == DeployOutcome(exit_code=0)
        assert outcome.succeeded
        assert out.getvalue().splitlines() == ["line {}".format(i) for i in range(200)]
        assert err.getvalue() == "warning: café\n"
        _report("PASS", "stdout and stderr forwarded verbatim")

    def test_nonzero_exit(self, tmp_path):
        supervisor = DeploySupervisor(
            [sys.executable, "-c", "raise SystemExit(7)"], cwd=tmp_path,
            stdout=io.StringIO(), stderr=io.StringIO(),
        )
        outcome = asyncio.run(supervisor.run(context="test exit"))
        assert outcome.exit_code == 7
        assert not outcome.succeeded

    def test_start_failure_raises(self, tmp_path):
        supervisor = DeploySupervisor([str(tmp_path / "missing-bsc")], cwd=tmp_path)
        with pytest.raises(DeployError) as exc_info:
            asyncio.run(supervisor.run(context="test start"))
        _report("CAUGHT", str(exc_info.value))
        assert exc_info.value.return_code == 1

    def test_second_run_rejected(self, tmp_path):
        supervisor = DeploySupervisor(
            [sys.executable, "-c", "pass"], cwd=tmp_path,
            stdout=io.StringIO(), stderr=io.StringIO(),
        )

        async def scenario():
            await supervisor.run(context="test once")
            await supervisor.run(context="test once")

        with pytest.raises(DeployError, match="already started"):
            asyncio.run(scenario())

    def test_password_redacted(self, tmp_path):
        supervisor = DeploySupervisor(
            ["npx", "bsc", "--password", "s3cret"], cwd=tmp_path, secrets=["s3cret", ""],
        )
        assert "s3cret" not in supervisor.display_command
        assert supervisor.display_command.endswith("--password ***")

    def test_terminate_when_idle(self, tmp_path):
        supervisor = DeploySupervisor([sys.executable, "-c", "pass"], cwd=tmp_path)
        assert supervisor.terminate() is False
        assert asyncio.run(supervisor.reap()) is None

    def test_hook_restores_after_failed_build(self, project_dir):
        manifest = project_dir / "src" / "manifest"
        original = manifest.read_bytes()
        hook = ManifestHook()
        supervisor = DeploySupervisor(
            [sys.executable, "-c", "raise SystemExit(2)"], cwd=project_dir,
            hook=hook, hook_root=project_dir / "src",
            stdout=io.StringIO(), stderr=io.StringIO(),
        )

        outcome = asyncio.run(supervisor.run(context="test hook"))

        assert outcome.exit_code == 2
        assert not hook.is_modified
        assert manifest.read_bytes() == original


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Home key-press
# ═══════════════════════════════════════════════════════════════════════════

class TestHomeKeypress:

    def test_keypress_delivered(self):
        async def scenario():
            ecp = ECPTestServer()
            await ecp.start()
            try:
                sent = await send_home_keypress("127.0.0.1", ecp.port)
            finally:
                await ecp.stop()
            return sent, ecp.keypresses

        sent, keypresses = asyncio.run(scenario())
        assert sent is True
        assert keypresses == ["Home"]

    def test_unreachable_device_is_swallowed(self):
        sent = asyncio.run(send_home_keypress("127.0.0.1", unused_port(), timeout=2))
        assert sent is False
        _report("PASS", "Refused key-press logged, not raised")
