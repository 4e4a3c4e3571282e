import asyncio
import shlex
import sys

from fleetwork.transport import (
    AsyncSSHTransport,
    Transport,
    TransportSettings,
    _spawn,
    create_transport,
    login_shell_command,
    rsync_command,
    ssh_command,
)


def test_rsync_command():
    assert rsync_command("./in", "host:/remote", ["-z"]) == [
        "rsync", "-r", "--mkpath", "-z", "./in", "host:/remote",
    ]


def test_ssh_command_runs_script_under_login_shell():
    command = login_shell_command("/tmp/fleetwork-exec.sh")
    assert shlex.split(command) == ["bash", "--login", "-c", "sh /tmp/fleetwork-exec.sh"]
    assert ssh_command("h", command, ["-p", "2222"]) == ["ssh", "-tt", "-p", "2222", "h", command]


def test_create_transport_picks_backend():
    assert type(create_transport(TransportSettings())) is Transport
    assert isinstance(create_transport(TransportSettings(shell="asyncssh")), AsyncSSHTransport)


def test_process_handle_streams_and_exit_status():
    async def run():
        handle = await _spawn([
            sys.executable, "-c",
            "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)",
        ])
        out = await handle.stdout.read()
        err = await handle.stderr.read()
        status = await handle.wait()
        handle.terminate()  # no-op once exited
        return out, err, status

    out, err, status = asyncio.run(run())
    assert out.strip() == b"out"
    assert err.strip() == b"err"
    assert status == 3


def test_process_handle_terminate_is_graceful():
    async def run():
        handle = await _spawn([sys.executable, "-c", "import time; time.sleep(30)"])
        handle.terminate()
        handle.terminate()
        return await handle.wait()

    assert asyncio.run(run()) != 0
