"""Host configuration.

HostConfig is a frozen dataclass - immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class HostConfig:
    """Host configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = HostConfig(port=3000, offload_activation=False)
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    workers: int = 1  # 0 = auto-detect from CPU count

    # Module activation
    # Run first-request activation in a worker thread so a slow activate()
    # blocks a thread instead of the event loop.
    offload_activation: bool = True

    # Logging
    log_level: str = "info"

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB
    websocket_max_message_size: int = 1_048_576  # 1 MB
