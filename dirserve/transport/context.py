"""Worker context for passing server state to handlers."""

import ssl
from dataclasses import dataclass
from typing import Optional

from dirserve.lifecycle.state import ConnectionRegistry
from dirserve.pipeline.chain import RequestPipeline


@dataclass(frozen=True)
class WorkerContext:
    """Everything a connection worker needs from its server."""

    pipeline: RequestPipeline
    connections: ConnectionRegistry
    tls_context: Optional[ssl.SSLContext] = None
    socket_timeout: Optional[float] = None
