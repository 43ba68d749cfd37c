import re
from typing import ClassVar

from ..transport import Transport
from .model import (
	HTTP_PROTOCOLS,
	STATUS_WITHOUT_BODY,
	HTTPHeaders,
	HTTPResponseLine,
	ProtocolError,
)

# NOTE: Header lines are decoded as latin-1, which maps every byte and
# never fails on servers that send non-ASCII values.
ENCODING: str = "latin-1"


def parseStatusLine(line: bytes | str) -> HTTPResponseLine:
	"""Parses a status line like `HTTP/1.1 200 OK`."""
	ln: str = line.decode(ENCODING) if isinstance(line, bytes) else line
	parts = ln.strip().split(None, 2)
	if len(parts) < 2:
		raise ProtocolError(f"Malformed status line: {ln!r}")
	protocol, status = parts[0], parts[1]
	version = HTTP_PROTOCOLS.get(protocol.upper())
	if version is None:
		raise ProtocolError(f"Unsupported protocol in status line: {ln!r}")
	if len(status) != 3 or not status.isdigit():
		raise ProtocolError(f"Malformed status code in status line: {ln!r}")
	return HTTPResponseLine(
		protocol, version, int(status), parts[2] if len(parts) > 2 else ""
	)


class HeadersParser:
	"""Accumulates header lines into `HTTPHeaders`. Lines that do not
	start with a header name and a colon are skipped, empty values are
	kept as `""`."""

	HEADER: ClassVar[re.Pattern[str]] = re.compile(r"([A-Za-z0-9-]+)\s*:\s*(.*)")
	BLANK: ClassVar[re.Pattern[str]] = re.compile(r"\s*")

	__slots__ = ["headers"]

	def __init__(self) -> None:
		self.headers: HTTPHeaders = HTTPHeaders()

	def feed(self, line: bytes | str) -> bool:
		"""Feeds one line, returns `False` when the line ends the block."""
		ln: str = line.decode(ENCODING) if isinstance(line, bytes) else line
		if self.BLANK.fullmatch(ln):
			return False
		match = self.HEADER.match(ln)
		if match:
			self.headers.add(match.group(1), match.group(2).strip())
		return True

	def flush(self) -> HTTPHeaders:
		res = self.headers
		self.headers = HTTPHeaders()
		return res


def receiveStatusLine(transport: Transport) -> HTTPResponseLine:
	return parseStatusLine(transport.receiveLine())


def receiveHeaders(transport: Transport) -> HTTPHeaders:
	"""Reads a header block, up to and including its empty line."""
	parser = HeadersParser()
	while parser.feed(transport.receiveLine()):
		pass
	return parser.flush()


def mergeTrailers(transport: Transport, headers: HTTPHeaders) -> HTTPHeaders:
	"""Reads the trailer block following a chunked body, when `headers`
	announced one, and merges it in `headers`. Trailers replace existing
	headers with the same name."""
	if headers.hasTrailers:
		headers.update(receiveHeaders(transport))
	return headers


def shouldReceiveBody(method: str, status: int) -> bool:
	if method.upper() == "HEAD":
		return False
	elif status in STATUS_WITHOUT_BODY:
		return False
	elif 100 <= status < 200:
		return False
	else:
		return True


# EOF
