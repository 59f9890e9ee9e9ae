"""Error taxonomy for the skew monitor.

Every failure is fail-stop: inner code raises one of these and the CLI
entrypoint is the only place that catches them.

- Startup: ConfigError, AgentUnavailableError, HostConnectError
- Round: SessionError, TimestampParseError
- Alert: AlertError
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SkewwatchError(Exception):
    """Base class for all fatal monitor errors."""

    def context(self) -> Dict[str, Any]:
        """Structured fields to attach to the fatal log record."""
        return {"kind": type(self).__name__}


class ConfigError(SkewwatchError, ValueError):
    """Invalid or missing configuration value."""


class AgentUnavailableError(SkewwatchError):
    """The SSH agent could not be reached or offers no identities."""


class HostConnectError(SkewwatchError):
    def __init__(self, host: str, cause: object):
        super().__init__(f"Error connecting to {host!r}: {cause}")
        self.host = host
        self.cause = cause

    def context(self) -> Dict[str, Any]:
        ctx = super().context()
        ctx["host"] = self.host
        return ctx


class SessionError(SkewwatchError):
    """Opening a session or running the time command on a host failed."""

    def __init__(self, host: str, cause: object):
        super().__init__(f"Error running time command on host {host!r}: {cause}")
        self.host = host
        self.cause = cause

    def context(self) -> Dict[str, Any]:
        ctx = super().context()
        ctx["host"] = self.host
        return ctx


class TimestampParseError(SkewwatchError):
    """A host returned output that is not an integer epoch timestamp."""

    def __init__(self, host: str, raw: bytes):
        text = raw.decode("utf-8", errors="replace")
        super().__init__(f"Unable to parse time {text!r} from host {host!r}")
        self.host = host
        self.raw = raw

    def context(self) -> Dict[str, Any]:
        ctx = super().context()
        ctx["host"] = self.host
        ctx["raw_output"] = self.raw.decode("utf-8", errors="replace")
        return ctx


class AlertError(SkewwatchError):
    """The alert command exited non-zero or could not be started."""

    def __init__(self, command: str, returncode: Optional[int], output: str):
        if returncode is None:
            reason = "could not be started"
        else:
            reason = f"exited with status {returncode}"
        super().__init__(f"Alert command failed!\nCommand: {command!r} {reason}\nOutput:\n{output}")
        self.command = command
        self.returncode = returncode
        self.output = output

    def context(self) -> Dict[str, Any]:
        ctx = super().context()
        ctx.update(command=self.command, returncode=self.returncode, output=self.output)
        return ctx
