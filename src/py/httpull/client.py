import time
from dataclasses import replace
from typing import Callable, TypeVar, Union

from .config import LOG_REQUESTS, USER_AGENT
from .http.body import BodyMode, BodyReader, drain
from .http.formatter import formatRequest
from .http.model import (
	HTTPHeaders,
	HTTPRequestParams,
	HTTPResponse,
	StateError,
	THeaderValue,
	TQuery,
	TransportError,
)
from .http.parser import (
	mergeTrailers,
	receiveHeaders,
	receiveStatusLine,
	shouldReceiveBody,
)
from .transport import SocketTransport, Target, Transport, TransportPool
from .utils.logging import debug, info, logged, warning
from .utils.uri import URI

ConnectionT = TypeVar("ConnectionT", bound="Connection")

# --
# A blocking HTTP/1.x client, running one exchange at a time on a transport.


# -----------------------------------------------------------------------------
#
# CONNECTION
#
# -----------------------------------------------------------------------------


class Connection:
	"""An HTTP connection to a host. Each exchange must have its body fully
	read (or the connection closed) before the next request is sent."""

	def __init__(
		self,
		transport: Union[Transport, None] = None,
		*,
		factory: Callable[[], Transport] = SocketTransport,
	):
		self.transport: Union[Transport, None] = transport
		self.factory: Callable[[], Transport] = factory
		self.host: Union[str, None] = None
		self.port: Union[int, None] = None
		# In milliseconds, applied to the transports as they are connected
		self.timeout: Union[float, None] = None
		# The body reader of the current exchange
		self.reader: Union[BodyReader, None] = None

	def connect(
		self: ConnectionT, host: str, port: int = 80, *, ssl: bool = False
	) -> ConnectionT:
		"""Connects to the given host, reusing an idle transport from the
		keepalive pool when there is one."""
		target = Target(host, port, ssl)
		if self.transport and self.transport.isConnected:
			if self.transport.target in (None, target):
				# The transport is kept, so the previous exchange must be complete
				self.ensureIdle("reconnect")
				self.settle()
				if self.reader and self.reader.mode is BodyMode.Whole:
					# The stream ended with the previous body
					self.transport.close()
			else:
				self.transport.close()
		self.host = host
		self.port = port
		self.reader = None
		if self.transport is None or not self.transport.isConnected:
			pooled = TransportPool.Get().get(target)
			transport: Transport = pooled or self.transport or self.factory()
			if self.timeout is not None:
				transport.setTimeout(self.timeout)
			if not pooled:
				transport.connect(host, port, ssl)
			self.transport = transport
		elif self.timeout is not None:
			self.transport.setTimeout(self.timeout)
		return self

	@property
	def isReady(self) -> bool:
		"""Tells if a new request can be sent on this connection."""
		return bool(
			self.transport
			and self.transport.isConnected
			and (self.reader is None or self.reader.isDone)
		)

	def ensureTransport(self) -> Transport:
		if self.transport is None:
			raise StateError("Connection is not connected")
		return self.transport

	def ensureIdle(self, operation: str) -> None:
		if self.reader is not None and not self.reader.isDone:
			raise StateError(
				f"Cannot {operation} while the previous response body is not fully read"
			)

	def settle(self) -> None:
		"""Consumes the trailer block of a chunked body when `readTrailers()`
		was not called, so that the transport is aligned for the next exchange."""
		if self.transport and self.reader and self.reader.trailing:
			self.reader.trailing = False
			receiveHeaders(self.transport)

	# =========================================================================
	# EXCHANGE
	# =========================================================================

	def request(
		self, params: Union[HTTPRequestParams, None] = None, **options: object
	) -> HTTPResponse:
		"""Sends the request described by `params` (or by keyword options
		matching `HTTPRequestParams`) and returns the response, with a
		`reader` to pull the body from when one is expected."""
		transport = self.ensureTransport()
		self.ensureIdle("send a request")
		self.settle()
		params = params or HTTPRequestParams(**options)  # type: ignore[arg-type]
		body = params.body
		headers = dict(params.headers)
		present = {_.lower() for _ in headers}
		if body is not None and "content-length" not in present:
			headers["Content-Length"] = len(body)
		if "host" not in present and self.host:
			headers["Host"] = self.host
		if "user-agent" not in present:
			headers["User-Agent"] = USER_AGENT
		if params.version == 1.0 and "connection" not in present:
			headers["Connection"] = "Keep-Alive"
		params = replace(params, headers=headers)
		method: str = params.method.upper()

		head = formatRequest(params)
		if logged(debug):
			debug("Sending request", Head=head.decode("latin-1"))
		started = time.monotonic()
		try:
			transport.sendBytes(head)
			if body:
				transport.sendBytes(body)
			line = receiveStatusLine(transport)
			res_headers = receiveHeaders(transport)
		except TransportError as e:
			warning("Request failed", Method=method, Path=params.path, Error=str(e))
			raise

		reader: Union[BodyReader, None] = (
			BodyReader.For(transport, line.version, res_headers)
			if shouldReceiveBody(method, line.status)
			else None
		)
		self.reader = reader
		if LOG_REQUESTS:
			info(
				f"{method} {params.path} → {line.status}",
				Host=self.host,
				Body=reader.mode.value if reader else None,
				Duration=time.monotonic() - started,
			)
		return HTTPResponse(
			status=line.status,
			version=line.version,
			headers=res_headers,
			reader=reader,
			message=line.message,
		)

	def readBody(self, reader: Union[BodyReader, None]) -> bytes:
		"""Reads the whole body, see `drain()`."""
		return drain(reader)

	def readTrailers(self, headers: HTTPHeaders) -> HTTPHeaders:
		"""Merges the trailers into `headers`, when the response announced
		some. The body must have been fully read."""
		if not headers.hasTrailers:
			return headers
		transport = self.ensureTransport()
		if self.reader is None or not self.reader.isDone:
			raise StateError("Trailers can only be read once the body is fully read")
		if self.reader.trailing:
			self.reader.trailing = False
			mergeTrailers(transport, headers)
		return headers

	def requestURI(
		self,
		uri: Union[URI, str],
		params: Union[HTTPRequestParams, None] = None,
		**options: object,
	) -> HTTPResponse:
		"""Connects to the URI's host, performs the request, reads the
		body in `body` and closes the connection."""
		target = URI.Parse(uri)
		params = params or HTTPRequestParams(**options)  # type: ignore[arg-type]
		params = replace(
			params,
			path=target.path,
			query=target.query if params.query is None else params.query,
		)
		self.connect(target.host, target.port, ssl=target.ssl)
		try:
			res = self.request(params)
			res.body = self.readBody(res.reader) if res.reader else b""
		finally:
			self.close()
		return res

	# =========================================================================
	# TRANSPORT
	# =========================================================================

	def setTimeout(self, timeout: Union[float, None]) -> None:
		"""Sets the timeout of transport operations, in milliseconds."""
		self.timeout = timeout
		if self.transport:
			self.transport.setTimeout(timeout)

	def setKeepalive(
		self, idle: Union[float, None] = None, size: Union[int, None] = None
	) -> bool:
		"""Hands the transport over to the keepalive pool, where it stays
		available to the next `connect()` to the same target for `idle`
		seconds. Returns `False` if the transport was closed instead."""
		transport = self.ensureTransport()
		self.ensureIdle("keep the connection alive")
		self.settle()
		reader = self.reader
		self.transport = None
		self.reader = None
		if reader and reader.mode is BodyMode.Whole:
			# The body was delimited by the end of the stream
			transport.close()
			return False
		return TransportPool.Get().put(transport, idle, size)

	def getReuseCount(self) -> int:
		"""How many times the current transport was reused from the pool."""
		return self.ensureTransport().reused

	def close(self) -> None:
		transport = self.ensureTransport()
		# A closed connection has no pending body anymore
		self.reader = None
		transport.close()

	def __enter__(self: ConnectionT) -> ConnectionT:
		return self

	def __exit__(self, type: object, value: object, traceback: object) -> None:
		if self.transport and self.transport.isConnected:
			self.close()

	def __str__(self) -> str:
		return f"Connection({self.host}:{self.port}, transport={self.transport})"


# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------


def request(
	method: str,
	uri: Union[URI, str],
	*,
	headers: Union[dict[str, THeaderValue], None] = None,
	query: Union[TQuery, None] = None,
	body: Union[bytes, None] = None,
	version: float = 1.1,
	timeout: Union[float, None] = None,
) -> HTTPResponse:
	"""Performs a one-off request, the returned response has its `body`
	fully read."""
	cxn = Connection()
	if timeout is not None:
		cxn.setTimeout(timeout)
	return cxn.requestURI(
		uri,
		HTTPRequestParams(
			method=method,
			query=query,
			version=version,
			headers=dict(headers or {}),
			body=body,
		),
	)


# EOF
