from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, NamedTuple, TypeAlias, Union

if TYPE_CHECKING:
	from .body import BodyReader

# -----------------------------------------------------------------------------
#
# PROTOCOL
#
# -----------------------------------------------------------------------------

# Maps the protocol version to the tail of the request line
HTTP_VERSIONS: dict[float, bytes] = {
	1.0: b" HTTP/1.0\r\n",
	1.1: b" HTTP/1.1\r\n",
}

HTTP_PROTOCOLS: dict[str, float] = {
	"HTTP/1.0": 1.0,
	"HTTP/1.1": 1.1,
}

# Statuses that never carry a body, on top of the 1xx range
STATUS_WITHOUT_BODY: frozenset[int] = frozenset((204, 304))

TQuery: TypeAlias = Union[str, Mapping[str, Union[str, int, list[str], tuple[str, ...]]]]
THeaderValue: TypeAlias = Union[str, int, list[str], tuple[str, ...]]

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPClientError(Exception):
	"""Base class for all the errors raised by the client."""


class TransportError(HTTPClientError):
	"""The underlying byte stream failed to connect, send or receive."""


class ProtocolError(HTTPClientError):
	"""The peer sent something that is not valid HTTP/1.x, the transport
	is left at an undefined position and should be closed."""


class StateError(HTTPClientError):
	"""An operation was called at the wrong point of an exchange."""

	def __init__(self, message: str):
		super().__init__(message)
		self.partial: bytes = b""


class BodyError(HTTPClientError):
	"""Reading a body failed midway, `partial` holds what was read
	before the failure."""

	def __init__(self, error: Exception, partial: bytes):
		super().__init__(f"Body reading failed after {len(partial)} bytes: {error}")
		self.error: Exception = error
		self.partial: bytes = partial


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPHeaders(dict[str, str]):
	"""Response headers. Names are kept as they were sent, a repeated
	header has its values joined with `", "`."""

	def add(self, name: str, value: str) -> "HTTPHeaders":
		existing = self.get(name)
		self[name] = value if existing is None else f"{existing}, {value}"
		return self

	def find(self, name: str) -> str | None:
		"""Case-insensitive lookup, used for the framing headers."""
		if name in self:
			return self[name]
		key = name.lower()
		for k, v in self.items():
			if k.lower() == key:
				return v
		return None

	@property
	def contentLength(self) -> int | None:
		value = self.find("Content-Length")
		try:
			length = int(value) if value is not None else None
		except ValueError:
			return None
		return length if length is None or length >= 0 else None

	@property
	def isChunked(self) -> bool:
		return (self.find("Transfer-Encoding") or "").strip().lower() == "chunked"

	@property
	def hasTrailers(self) -> bool:
		return bool(self.find("Trailer"))


@dataclass
class HTTPRequestParams:
	"""Describes the request to be formatted and sent."""

	method: str = "GET"
	path: str = "/"
	query: TQuery | None = None
	version: float = 1.1
	headers: dict[str, THeaderValue] = field(default_factory=dict)
	body: bytes | None = None


class HTTPResponseLine(NamedTuple):
	"""Represents a response status line"""

	protocol: str
	version: float
	status: int
	message: str


@dataclass
class HTTPResponse:
	status: int
	version: float
	headers: HTTPHeaders
	reader: Union["BodyReader", None] = None
	message: str = ""
	# Only set when the body was drained, like with `requestURI`
	body: bytes | None = None

	def __str__(self) -> str:
		return f"HTTPResponse({self.status} {self.message} HTTP/{self.version})"


# EOF
