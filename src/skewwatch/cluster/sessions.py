"""SSH sessions to the monitored fleet.

One paramiko client per host is opened at startup and kept for the whole
process lifetime. Each query opens a short-lived channel on that client's
transport, runs a single command and closes the channel again.

Authentication goes exclusively through the SSH agent named by
$SSH_AUTH_SOCK; an unreachable agent is a startup failure.
"""

from __future__ import annotations

import os
import socket
from types import MappingProxyType
from typing import Callable, Dict, Iterator, Mapping, Optional, Tuple

import paramiko

from skewwatch.config.monitor import MonitorConfig
from skewwatch.errors import AgentUnavailableError, HostConnectError, SessionError
from skewwatch.utils.logging_config import get_logger

logger = get_logger(__name__)

_HOST_KEY_POLICIES = {
    "reject": paramiko.RejectPolicy,
    "warn": paramiko.WarningPolicy,
    "auto-add": paramiko.AutoAddPolicy,
}


class HostSession:
    """A persistent authenticated channel to one remote host."""

    def __init__(self, host: str, client: paramiko.SSHClient):
        self.host = host
        self._client = client

    def run(self, command: str) -> bytes:
        """Run one command in a fresh session and return its trimmed stdout.

        Raises SessionError when the session cannot be opened, the transport
        fails mid-command, or the command exits non-zero.
        """
        try:
            _stdin, stdout, stderr = self._client.exec_command(command)
        except (paramiko.SSHException, OSError) as exc:
            raise SessionError(self.host, f"unable to open session: {exc}") from exc

        channel = stdout.channel
        try:
            output = stdout.read()
            status = channel.recv_exit_status()
            errors = stderr.read() if status != 0 else b""
        except (paramiko.SSHException, OSError) as exc:
            raise SessionError(self.host, exc) from exc
        finally:
            channel.close()

        if status != 0:
            detail = errors.decode("utf-8", errors="replace").strip()
            raise SessionError(self.host, f"{command!r} exited with status {status}: {detail}")
        return output.strip()

    def close(self) -> None:
        self._client.close()


class Fleet(Mapping[str, HostSession]):
    """Read-only host -> session lookup, built once at startup."""

    def __init__(self, sessions: Mapping[str, HostSession]):
        self._sessions = MappingProxyType(dict(sorted(sessions.items())))

    def __getitem__(self, host: str) -> HostSession:
        return self._sessions[host]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def hosts(self) -> Tuple[str, ...]:
        return tuple(self._sessions)

    def close(self) -> None:
        for session in self._sessions.values():
            session.close()


def check_agent(
    agent_factory: Callable[[], paramiko.Agent] = paramiko.Agent,
    sock_path: Optional[str] = None,
) -> int:
    """Verify the SSH agent is reachable and offers identities.

    Returns the number of identities the agent holds.
    """
    if sock_path is None:
        sock_path = os.environ.get("SSH_AUTH_SOCK", "")
    if not sock_path:
        raise AgentUnavailableError("Unable to connect to ssh agent: $SSH_AUTH_SOCK is not set")

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as probe:
            probe.connect(sock_path)
    except OSError as exc:
        raise AgentUnavailableError(
            f"Unable to connect to ssh agent on $SSH_AUTH_SOCK ({sock_path!r}): {exc}"
        ) from exc

    try:
        agent = agent_factory()
    except paramiko.SSHException as exc:
        raise AgentUnavailableError(f"SSH agent on {sock_path!r} rejected the connection: {exc}") from exc
    try:
        keys = agent.get_keys()
    finally:
        agent.close()

    if not keys:
        raise AgentUnavailableError(f"SSH agent on {sock_path!r} offers no identities")
    logger.debug("agent_ready", identities=len(keys))
    return len(keys)


def connect_fleet(
    config: MonitorConfig,
    client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
) -> Fleet:
    """Open one agent-authenticated connection per configured host.

    Any failure closes the connections opened so far and raises
    HostConnectError for the offending host.
    """
    policy_cls = _HOST_KEY_POLICIES[config.host_key_policy]
    sessions: Dict[str, HostSession] = {}
    logger.info("fleet_connecting", hosts=len(config.hosts), user=config.user, port=config.port)

    for host in config.hosts:
        client = client_factory()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(policy_cls())
        try:
            client.connect(
                host,
                port=config.port,
                username=config.user,
                allow_agent=True,
                look_for_keys=False,
                timeout=config.connect_timeout or None,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            for opened in sessions.values():
                opened.close()
            raise HostConnectError(host, exc) from exc
        sessions[host] = HostSession(host, client)
        logger.info("host_connected", host=host)

    return Fleet(sessions)
