from enum import Enum
from typing import Iterator, Union

from ..transport import Transport
from ..utils.logging import debug, logged
from .model import BodyError, HTTPHeaders, ProtocolError, StateError

# --
# Response bodies are exposed as a `BodyReader`, a resumable state machine
# that is pulled for chunks. Each pull may give a different `maxChunkSize`,
# so that the caller can adjust how much is buffered as it goes.


class BodyMode(Enum):
	# Read until the peer closes the connection
	Whole = "whole"
	# Read `Content-Length` bytes
	Bounded = "bounded"
	# Chunked transfer-encoding
	Chunked = "chunked"


class BodyReader:
	"""Pulls the body of a response from a transport, one chunk at a time.
	`pull()` returns `None` once the body is complete."""

	__slots__ = [
		"transport",
		"mode",
		"length",
		"received",
		"remaining",
		"pendingCRLF",
		"trailing",
		"isDone",
		"isFailed",
	]

	@staticmethod
	def For(transport: Transport, version: float, headers: HTTPHeaders) -> "BodyReader":
		"""Creates the reader matching the framing declared by the headers."""
		if version == 1.1 and headers.isChunked:
			return BodyReader(transport, BodyMode.Chunked)
		length = headers.contentLength
		if length is None:
			return BodyReader(transport, BodyMode.Whole)
		else:
			return BodyReader(transport, BodyMode.Bounded, length)

	def __init__(
		self, transport: Transport, mode: BodyMode, length: int | None = None
	):
		if mode is BodyMode.Bounded and length is None:
			raise ValueError("A bounded body reader requires a length")
		self.transport: Transport = transport
		self.mode: BodyMode = mode
		self.length: int | None = length
		self.received: int = 0
		# Bytes left in a chunk whose size line has been consumed
		self.remaining: int = 0
		# The CRLF after a fully delivered chunk is still to be consumed
		self.pendingCRLF: bool = False
		# The trailer block after the last chunk is still on the wire
		self.trailing: bool = False
		self.isDone: bool = False
		self.isFailed: bool = False

	def pull(self, maxChunkSize: int | None = None) -> bytes | None:
		"""Returns the next chunk of the body, at most `maxChunkSize` bytes
		long when given (ignored for bodies read until close), or `None`
		when the body is complete. Any error makes the reader unusable."""
		if self.isFailed:
			raise StateError("Body reader failed and cannot be pulled again")
		elif self.isDone:
			return None
		if maxChunkSize is not None and maxChunkSize <= 0:
			raise ValueError(f"maxChunkSize must be positive, got: {maxChunkSize}")
		try:
			if self.mode is BodyMode.Chunked:
				chunk = self._pullChunked(maxChunkSize)
			elif self.mode is BodyMode.Bounded:
				chunk = self._pullBounded(maxChunkSize)
			else:
				chunk = self._pullWhole()
		except Exception:
			self.isFailed = True
			raise
		if chunk is None:
			self.isDone = True
		else:
			self.received += len(chunk)
		return chunk

	def _pullWhole(self) -> bytes | None:
		# There is no framing: this is the only pull that reads anything.
		self.isDone = True
		return self.transport.receiveAll() or None

	def _pullBounded(self, maxChunkSize: int | None) -> bytes | None:
		assert self.length is not None  # nosec: B101
		length = self.length - self.received
		if maxChunkSize is not None:
			length = min(maxChunkSize, length)
		return self.transport.receiveExact(length) if length > 0 else None

	def _pullChunked(self, maxChunkSize: int | None) -> bytes | None:
		transport = self.transport
		if self.pendingCRLF:
			transport.receiveExact(2)
			self.pendingCRLF = False
		if self.remaining > 0:
			# We're continuing a chunk larger than the previous maxChunkSize
			length = min(maxChunkSize or self.remaining, self.remaining)
			self.remaining -= length
		else:
			size = parseChunkSize(transport.receiveLine())
			if maxChunkSize is not None and size > maxChunkSize:
				length = maxChunkSize
				self.remaining = size - maxChunkSize
			else:
				length = size
		if length == 0:
			# The last chunk: its CRLF and the trailers are left on the wire
			# for `mergeTrailers()`.
			self.trailing = True
			return None
		data = transport.receiveExact(length)
		self.pendingCRLF = self.remaining == 0
		return data

	def iter(self, maxChunkSize: int | None = None) -> Iterator[bytes]:
		while (chunk := self.pull(maxChunkSize)) is not None:
			yield chunk

	def __iter__(self) -> Iterator[bytes]:
		return self.iter()

	def __str__(self) -> str:
		return f"BodyReader({self.mode.value}, received={self.received}, done={self.isDone})"


def parseChunkSize(line: bytes) -> int:
	"""Parses the hexadecimal size of a chunk, ignoring extensions."""
	try:
		size = int(line.split(b";", 1)[0].strip(), 16)
	except ValueError as e:
		raise ProtocolError(f"Unable to read chunk size: {line!r}") from e
	if size < 0:
		raise ProtocolError(f"Negative chunk size: {line!r}")
	return size


def drain(reader: Union[BodyReader, None]) -> bytes:
	"""Reads the rest of the body in memory. When reading fails, the raised
	`BodyError` holds the bytes read so far in `partial`."""
	if reader is None:
		# Most likely a HEAD request, or a 204/304 response
		raise StateError("no body to be read")
	chunks: list[bytes] = []
	while True:
		try:
			chunk = reader.pull()
		except StateError:
			raise
		except Exception as e:
			raise BodyError(e, b"".join(chunks)) from e
		if chunk is None:
			break
		if logged(debug):
			debug("Got body chunk", Length=len(chunk))
		chunks.append(chunk)
	return b"".join(chunks)


# EOF
