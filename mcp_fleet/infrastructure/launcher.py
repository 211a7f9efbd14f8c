"""Process launcher - spawns provider processes with piped stdio."""

import os
import subprocess

from ..domain.exceptions import TransportError
from ..domain.model import ProviderConfig, TransportKind
from ..logging_config import get_logger

logger = get_logger(__name__)


class SubprocessLauncher:
    """Spawn a provider as a local child process."""

    def launch(self, config: ProviderConfig) -> subprocess.Popen:
        """
        Start the provider process.

        The child inherits the current environment with the config's env
        overrides applied on top.

        Raises:
            TransportError: If the transport is not stdio or the spawn fails
        """
        if config.transport != TransportKind.STDIO:
            raise TransportError(
                f"transport_not_supported: {config.transport.value}",
                provider_id=config.provider_id,
            )

        env = {**os.environ, **config.env}
        try:
            process = subprocess.Popen(
                config.argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=config.cwd,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError) as e:
            raise TransportError(f"spawn_failed: {e}", provider_id=config.provider_id) from e

        logger.debug(
            "provider_process_spawned",
            provider_id=config.provider_id,
            pid=process.pid,
            command=" ".join(config.argv),
        )
        return process
