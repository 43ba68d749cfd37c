from .http.model import (
	HTTPClientError,
	TransportError,
	ProtocolError,
	StateError,
	BodyError,
	HTTPHeaders,
	HTTPRequestParams,
	HTTPResponse,
)  # NOQA: F401
from .http.body import BodyReader, BodyMode, drain  # NOQA: F401
from .http.formatter import formatRequest  # NOQA: F401
from .client import Connection, request  # NOQA: F401
from .transport import Transport, SocketTransport, MemoryTransport, pooling  # NOQA: F401
from .config import VERSION as __version__  # NOQA: F401

# EOF
