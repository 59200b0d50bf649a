"""Bounded subprocess execution shared by the trust and hosts services."""

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import CommandError, CommandTimeoutError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Exit status and captured output of a finished subprocess."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs external commands with captured output and a hard timeout.

    Services receive a runner instead of calling ``subprocess`` directly so
    tests can substitute a fake that records invocations.
    """

    def __init__(self, timeout: float = 120.0) -> None:
        """Initialize runner.

        Args:
            timeout: Default seconds to wait before the child is killed
        """
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        input_text: str | None = None,
        timeout: float | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run ``args`` to completion and return its result without checking the exit code.

        Args:
            args: Program and arguments, never passed through a shell
            input_text: Text written to stdin, which is then closed
            timeout: Overrides the runner default
            cwd: Working directory for the child

        Returns:
            CommandResult with exit code and decoded output

        Raises:
            CommandTimeoutError: If the child outlives the timeout (it is killed)
            NotFoundError: If the program does not exist
        """
        argv = [str(arg) for arg in args]
        wait = self.timeout if timeout is None else timeout
        logger.debug("Running %s", argv)
        try:
            completed = subprocess.run(
                argv,
                input=input_text if input_text is not None else "",
                capture_output=True,
                text=True,
                timeout=wait,
                cwd=cwd,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(
                f"{argv[0]} did not finish within {wait:g}s and was cancelled",
                returncode=None,
                stderr=_decode(e.stderr),
            ) from e
        except FileNotFoundError as e:
            raise NotFoundError(f"command not found: {argv[0]}") from e

        return CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def check(
        self,
        args: Sequence[str],
        input_text: str | None = None,
        timeout: float | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Like ``run`` but raise CommandError on a non-zero exit."""
        result = self.run(args, input_text=input_text, timeout=timeout, cwd=cwd)
        if not result.ok:
            raise CommandError(
                f"{result.args[0]} failed (rc={result.returncode}): {result.stderr.strip()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
