"""
Thin wrapper around the kubectl command line.

Every call is a blocking subprocess; a non-zero exit raises CommandError with
the captured stderr. The runner is injectable so tests never spawn kubectl.
"""

import json
import logging
import subprocess
from typing import Any, Callable, Dict, List, Optional

from .errors import CommandError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

DEFAULT_TIMEOUT = 120


def run_command(
    runner: Runner,
    cmd: List[str],
    input: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run ``cmd`` and raise CommandError on failure when ``check`` is set."""
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = runner(
            cmd,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        raise CommandError(cmd, 127, f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        raise CommandError(cmd, -1, f"timed out after {timeout}s")

    if check and result.returncode != 0:
        logger.debug("Command failed (%d): %s", result.returncode, result.stderr.strip())
        raise CommandError(cmd, result.returncode, result.stderr or "")
    return result


class Kubectl:
    """kubectl invocations used by the deployment and health code."""

    def __init__(
        self,
        binary: str = "kubectl",
        context: Optional[str] = None,
        runner: Runner = subprocess.run,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.binary = binary
        self.context = context
        self.runner = runner
        self.timeout = timeout

    def _cmd(self, args: List[str]) -> List[str]:
        cmd = [self.binary]
        if self.context:
            cmd += ["--context", self.context]
        return cmd + list(args)

    def run(self, *args: str, input: Optional[str] = None, check: bool = True) -> subprocess.CompletedProcess:
        return run_command(self.runner, self._cmd(list(args)), input=input, timeout=self.timeout, check=check)

    def get_json(self, *args: str) -> Dict[str, Any]:
        """Run a ``get`` style command with ``-o json`` and parse the output."""
        result = self.run(*args, "-o", "json")
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise CommandError(self._cmd(list(args)), 0, f"invalid JSON output: {e}")

    def apply(self, manifests: str) -> str:
        """Apply a multi-document YAML stream read from stdin."""
        result = self.run("apply", "-f", "-", input=manifests)
        return result.stdout

    def delete(self, manifests: str) -> str:
        result = self.run("delete", "--ignore-not-found", "-f", "-", input=manifests)
        return result.stdout

    def create_namespace(self, namespace: str) -> None:
        """Create ``namespace`` if missing (render with --dry-run, then apply)."""
        rendered = self.run("create", "namespace", namespace, "--dry-run=client", "-o", "yaml")
        self.apply(rendered.stdout)
        logger.info("Namespace %s ready", namespace)

    def namespace_exists(self, namespace: str) -> bool:
        result = self.run("get", "namespace", namespace, check=False)
        return result.returncode == 0

    def use_context(self, context: str) -> None:
        self.run("config", "use-context", context)
        logger.info("Switched kubectl context to %s", context)

    def current_context(self) -> Optional[str]:
        result = self.run("config", "current-context", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None
