"""Ephemeral PostgreSQL provisioning under docker or podman.

The container exists only for the duration of one ``generate`` run. Use
:func:`ephemeral_database` so that teardown happens on every exit path.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from pgbind.config import ContainerRuntime, ProvisionerSettings
from pgbind.exceptions import ProvisioningError, ReadinessTimeoutError

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], subprocess.CompletedProcess[str]]


def run_command(args: Sequence[str]) -> subprocess.CompletedProcess[str]:
    """Run a runtime command, capturing its output."""
    return subprocess.run(list(args), capture_output=True, text=True, check=False)


class Provisioner:
    """Starts and removes one disposable PostgreSQL container.

    ``setup`` and ``cleanup`` may be called directly, but
    :func:`ephemeral_database` is the intended entry point.
    """

    def __init__(
        self,
        runtime: ContainerRuntime = ContainerRuntime.DOCKER,
        settings: ProvisionerSettings | None = None,
        runner: Runner = run_command,
        which: Callable[[str], str | None] = shutil.which,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runtime = ContainerRuntime(runtime)
        self.settings = settings or ProvisionerSettings()
        self._runner = runner
        self._which = which
        self._sleep = sleep
        self._clock = clock
        self._container_id: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether a container started by this provisioner still exists."""
        return self._container_id is not None

    @property
    def url(self) -> str:
        """Connection URL of the provisioned database."""
        return self.settings.url

    def setup(self) -> str:
        """Start the container and wait until it accepts connections.

        Returns:
            The connection URL

        Raises:
            ProvisioningError: If the runtime is missing or the container fails to start
            ReadinessTimeoutError: If the database is not ready in time; the
                container is removed before this is raised
        """
        if self.is_running:
            raise ProvisioningError(
                f"Container '{self.settings.container_name}' is already running"
            )
        if self._which(self.runtime.value) is None:
            raise ProvisioningError(
                f"Container runtime '{self.runtime}' was not found on PATH. "
                f"Install it or choose another runtime ({', '.join(ContainerRuntime.values())})",
                {"runtime": self.runtime.value},
            )

        self._start()
        try:
            self._wait_until_ready()
        except BaseException:
            self.cleanup()
            raise
        return self.url

    def cleanup(self) -> None:
        """Stop and remove the container.

        Safe to call more than once and when ``setup`` never started anything.

        Raises:
            ProvisioningError: If the runtime fails to remove the container
        """
        if self._container_id is None:
            return

        name = self.settings.container_name
        logger.info(f"Removing container {name}")
        self._container_id = None
        stop = self._runner([self.runtime.value, "stop", name])
        remove = self._runner([self.runtime.value, "rm", "-v", name])
        if remove.returncode != 0:
            detail = (remove.stderr or stop.stderr or "").strip()
            raise ProvisioningError(
                f"Failed to remove container '{name}': {detail}. "
                f"Remove it manually with '{self.runtime} rm -f {name}'",
                {"container": name, "runtime": self.runtime.value},
            )

    def _start(self) -> None:
        s = self.settings
        args = [
            self.runtime.value,
            "run",
            "-d",
            "--name",
            s.container_name,
            "-p",
            f"{s.host}:{s.port}:5432",
            "-e",
            f"POSTGRES_USER={s.user}",
            "-e",
            f"POSTGRES_PASSWORD={s.password}",
            "-e",
            f"POSTGRES_DB={s.database}",
            s.image,
        ]
        logger.info(f"Starting {s.image} as container {s.container_name} ({self.runtime})")
        try:
            result = self._runner(args)
        except OSError as e:
            raise ProvisioningError(f"Could not run '{self.runtime}': {e}") from e
        if result.returncode != 0:
            raise ProvisioningError(
                f"Failed to start container '{s.container_name}': {result.stderr.strip()}. "
                f"If a stale container exists, remove it with "
                f"'{self.runtime} rm -f {s.container_name}'",
                {"container": s.container_name, "runtime": self.runtime.value},
            )
        self._container_id = result.stdout.strip() or s.container_name

    def _is_ready(self) -> bool:
        s = self.settings
        result = self._runner(
            [
                self.runtime.value,
                "exec",
                s.container_name,
                "pg_isready",
                "-h",
                "127.0.0.1",
                "-U",
                s.user,
                "-d",
                s.database,
            ]
        )
        return result.returncode == 0

    def _wait_until_ready(self) -> None:
        s = self.settings
        started = self._clock()
        deadline = started + s.ready_timeout
        slow_after = started + s.ready_timeout / 4
        delay = s.poll_interval
        warned = False
        while not self._is_ready():
            now = self._clock()
            if now >= deadline:
                raise ReadinessTimeoutError(s.container_name, s.ready_timeout)
            if not warned and now >= slow_after:
                logger.warning("Container startup slower than expected, still waiting")
                warned = True
            self._sleep(min(delay, max(deadline - now, 0.0)))
            delay = min(delay * s.backoff, s.max_poll_interval)
        logger.debug(f"Container ready after {self._clock() - started:.2f}s")


@contextmanager
def ephemeral_database(
    runtime: ContainerRuntime = ContainerRuntime.DOCKER,
    settings: ProvisionerSettings | None = None,
    provisioner: Provisioner | None = None,
) -> Iterator[str]:
    """Provide the URL of a freshly started database, removing it on exit.

    Teardown runs exactly once whether the block succeeds, raises or is
    interrupted. If ``setup`` fails before a container exists nothing is
    torn down.
    """
    provisioner = provisioner or Provisioner(runtime, settings)
    url = provisioner.setup()
    try:
        yield url
    finally:
        provisioner.cleanup()
