"""Detect whether the peer helper binary can be launched on this host."""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from tool_host.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PeerAvailability:
    available: bool
    path: Optional[str] = None
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {"available": self.available, "path": self.path, "issues": self.issues}


PeerProbe = Callable[[], Awaitable[PeerAvailability]]


def unavailable_message(peer_command: Sequence[str], probe_command: Sequence[str]) -> str:
    binary = peer_command[-1] if peer_command else "peer"
    probe = " ".join(probe_command) or "discovery probe"
    return f"Peer binary '{binary}' not available ({probe} failed)"


class CommandProbe:
    """Run ``probe_command`` and treat exit status 0 as "peer available".

    The command's first stdout line, when present, is reported as the
    resolved path of the helper binary.
    """

    def __init__(self, probe_command: Sequence[str], *, timeout_ms: int = 5000) -> None:
        if not probe_command:
            raise ValueError("probe_command must not be empty")
        self._command = tuple(probe_command)
        self._timeout = timeout_ms / 1000

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    async def __call__(self) -> PeerAvailability:
        issues: list[str] = []
        executable = shutil.which(self._command[0])
        if executable is None:
            issues.append(f"{self._command[0]} not found on PATH")
            return self._report(PeerAvailability(available=False, issues=issues))

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *self._command[1:],
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            issues.append(f"Failed to execute probe: {exc}")
            return self._report(PeerAvailability(available=False, issues=issues))

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            issues.append(f"Probe timed out after {self._timeout:g}s")
            return self._report(PeerAvailability(available=False, issues=issues))

        if process.returncode != 0:
            issues.append(f"{' '.join(self._command)} exited with {process.returncode}")
            return self._report(PeerAvailability(available=False, issues=issues))

        lines = stdout.decode("utf-8", errors="replace").splitlines()
        path = lines[0].strip() if lines else None
        return self._report(PeerAvailability(available=True, path=path or None))

    def _report(self, availability: PeerAvailability) -> PeerAvailability:
        if availability.issues:
            logger.warning("bridge.discovery.unavailable", issues=availability.issues)
        else:
            logger.debug("bridge.discovery.ok", path=availability.path)
        return availability


__all__ = ["CommandProbe", "PeerAvailability", "PeerProbe", "unavailable_message"]
