import pytest

from httpull.client import Connection
from httpull.config import USER_AGENT
from httpull.http.body import BodyMode
from httpull.http.model import (
	BodyError,
	HTTPRequestParams,
	ProtocolError,
	StateError,
	TransportError,
)
from httpull.transport import MemoryTransport, Target, pooling

OK_EMPTY: bytes = b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n"
OK_HELLO: bytes = b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nHello"
OK_CHUNKED: bytes = (
	b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n"
	b"4\r\nWiki\r\n5\r\npedia\r\n0\r\n\r\n"
)
OK_TRAILERS: bytes = (
	b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\nTrailer: X-Sum\r\n"
	b"X-Sum: pending\r\n\r\n"
	b"4\r\nWiki\r\n0\r\nX-Sum: abc\r\n\r\n"
)


def connection(*responses: bytes, host: str = "example.com") -> tuple[Connection, MemoryTransport]:
	transport = MemoryTransport([_ for _ in responses])
	return Connection(transport).connect(host, 80), transport


def sentHead(transport: MemoryTransport) -> list[bytes]:
	return bytes(transport.sent).split(b"\r\n\r\n", 1)[0].split(b"\r\n")


# -----------------------------------------------------------------------------
#
# REQUEST
#
# -----------------------------------------------------------------------------


def test_request_injected_headers():
	cxn, transport = connection(OK_HELLO)
	res = cxn.request(HTTPRequestParams(method="post", path="/upload", body=b"data"))
	head = sentHead(transport)
	assert head[0] == b"POST /upload HTTP/1.1"
	assert b"Content-Length: 4" in head
	assert b"Host: example.com" in head
	assert f"User-Agent: {USER_AGENT}".encode() in head
	assert not any(_.startswith(b"Connection:") for _ in head)
	assert bytes(transport.sent).endswith(b"\r\n\r\ndata")
	assert res.status == 200
	assert cxn.readBody(res.reader) == b"Hello"


def test_request_explicit_headers():
	cxn, transport = connection(OK_HELLO)
	cxn.request(
		method="PUT",
		body=b"data",
		headers={"content-length": "4", "host": "other", "User-Agent": "test"},
	)
	head = sentHead(transport)
	assert [_ for _ in head if _.lower().startswith(b"content-length")] == [b"content-length: 4"]
	assert b"host: other" in head
	assert b"User-Agent: test" in head
	assert not any(_.startswith(b"Host:") for _ in head)


def test_request_http10():
	cxn, transport = connection(b"HTTP/1.0 200 OK\r\n\r\nall the rest")
	res = cxn.request(HTTPRequestParams(version=1.0))
	head = sentHead(transport)
	assert head[0] == b"GET / HTTP/1.0"
	assert b"Connection: Keep-Alive" in head
	assert res.version == 1.0
	assert res.reader is not None and res.reader.mode is BodyMode.Whole
	assert cxn.readBody(res.reader) == b"all the rest"


def test_request_without_body():
	for method, response in (
		("HEAD", b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\n"),
		("GET", b"HTTP/1.1 204 No Content\r\n\r\n"),
		("GET", b"HTTP/1.1 304 Not Modified\r\nContent-Length: 10\r\n\r\n"),
	):
		cxn, _ = connection(response)
		res = cxn.request(method=method)
		assert res.reader is None
		with pytest.raises(StateError):
			cxn.readBody(res.reader)
		# The connection can be used right away
		assert cxn.isReady


def test_request_headers_folding():
	cxn, _ = connection(b"HTTP/1.1 200 OK\r\nX-A: 1\r\nX-A: 2\r\nContent-Length: 0\r\n\r\n")
	res = cxn.request()
	assert res.headers["X-A"] == "1, 2"
	assert res.message == "OK"


def test_request_malformed_status():
	cxn, _ = connection(b"HTTQ 200 OK\r\n\r\n")
	with pytest.raises(ProtocolError):
		cxn.request()


def test_request_not_connected():
	with pytest.raises(StateError):
		Connection().request()


def test_request_transport_error():
	cxn, transport = connection(b"HTTP/1.1 200 OK\r\n")
	with pytest.raises(TransportError):
		cxn.request()


# -----------------------------------------------------------------------------
#
# EXCHANGES
#
# -----------------------------------------------------------------------------


def test_pending_body_rejects_request():
	cxn, _ = connection(OK_HELLO, OK_EMPTY)
	res = cxn.request()
	assert res.reader is not None
	assert res.reader.pull(2) == b"He"
	assert not cxn.isReady
	with pytest.raises(StateError):
		cxn.request()
	assert cxn.readBody(res.reader) == b"llo"
	assert cxn.isReady
	assert cxn.request().status == 200


def test_pending_body_rejects_reconnect():
	cxn, transport = connection(OK_HELLO, OK_EMPTY)
	res = cxn.request()
	assert res.reader.pull(2) == b"He"
	with pytest.raises(StateError):
		cxn.connect("example.com", 80)
	# The pending body is still there to be read
	assert transport.isConnected
	assert cxn.readBody(res.reader) == b"llo"
	assert cxn.connect("example.com", 80).request().status == 200


def test_reconnect_skips_trailers():
	cxn, _ = connection(OK_TRAILERS, OK_EMPTY)
	res = cxn.request()
	assert cxn.readBody(res.reader) == b"Wiki"
	# Trailers were not read, reconnecting to the same target consumes them
	res = cxn.connect("example.com", 80).request()
	assert res.status == 200


def test_reconnect_after_read_until_close():
	cxn, transport = connection(b"HTTP/1.0 200 OK\r\n\r\nall the rest")
	res = cxn.request(HTTPRequestParams(version=1.0))
	assert cxn.readBody(res.reader) == b"all the rest"
	cxn.connect("example.com", 80)
	# The ended stream is closed and connected again
	assert cxn.transport is transport
	assert transport.target == Target("example.com", 80, False)
	assert cxn.reader is None


def test_failed_body_rejects_request():
	cxn, _ = connection(b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\nnope\r\n")
	res = cxn.request()
	with pytest.raises(ProtocolError):
		res.reader.pull()
	with pytest.raises(StateError):
		cxn.request()


def test_sequential_chunked_exchanges():
	cxn, transport = connection(OK_CHUNKED, OK_HELLO)
	res = cxn.request(path="/first")
	assert [_ for _ in res.reader.iter(2)] == [b"Wi", b"ki", b"pe", b"di", b"a"]
	# The end of the chunked body is consumed before the next exchange
	res = cxn.request(path="/second")
	assert res.status == 200
	assert cxn.readBody(res.reader) == b"Hello"
	assert bytes(transport.sent).count(b"GET ") == 2


def test_trailers():
	cxn, _ = connection(OK_TRAILERS, OK_EMPTY)
	res = cxn.request()
	assert res.headers["X-Sum"] == "pending"
	with pytest.raises(StateError):
		cxn.readTrailers(res.headers)
	assert cxn.readBody(res.reader) == b"Wiki"
	cxn.readTrailers(res.headers)
	assert res.headers["X-Sum"] == "abc"
	# Reading them again is a no-op
	cxn.readTrailers(res.headers)
	assert cxn.request().status == 200


def test_trailers_absent():
	cxn, _ = connection(OK_HELLO)
	res = cxn.request()
	headers = dict(res.headers)
	# No `Trailer` header, nothing to do even with a pending body
	assert cxn.readTrailers(res.headers) == headers


def test_request_uri():
	cxn, transport = connection(OK_EMPTY)
	res = cxn.requestURI("http://host/path?x=1", HTTPRequestParams())
	assert res.status == 200
	assert res.body == b""
	assert not transport.isConnected
	head = sentHead(transport)
	assert head[0] == b"GET /path?x=1 HTTP/1.1"
	assert b"Host: host" in head


def test_request_uri_body():
	cxn, transport = connection(OK_CHUNKED)
	res = cxn.requestURI("http://host:8080/", method="GET", query={"q": "a b"})
	assert res.body == b"Wikipedia"
	assert sentHead(transport)[0] == b"GET /?q=a+b HTTP/1.1"
	assert not transport.isConnected


def test_request_uri_params_reused():
	params = HTTPRequestParams()
	first, first_transport = connection(OK_EMPTY)
	first.requestURI("http://one/a?x=1", params)
	second, second_transport = connection(OK_EMPTY)
	second.requestURI("http://two/b?y=2", params)
	assert sentHead(first_transport)[0] == b"GET /a?x=1 HTTP/1.1"
	head = sentHead(second_transport)
	assert head[0] == b"GET /b?y=2 HTTP/1.1"
	assert b"Host: two" in head
	assert b"Host: one" not in head
	# The given parameters are left untouched
	assert params == HTTPRequestParams()


def test_request_uri_error_closes():
	cxn, transport = connection(
		b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n3\r\nabc\r\n5\r\nde"
	)
	with pytest.raises(BodyError) as e:
		cxn.requestURI("http://host/")
	assert e.value.partial == b"abc"
	assert not transport.isConnected


def test_request_uri_bad():
	with pytest.raises(ValueError):
		Connection(MemoryTransport()).requestURI("ftp://host/")


# -----------------------------------------------------------------------------
#
# KEEPALIVE
#
# -----------------------------------------------------------------------------


def test_keepalive():
	with pooling() as pool:
		transport = MemoryTransport([OK_CHUNKED, OK_HELLO], connected=False)
		cxn = Connection(transport).connect("example.com", 80)
		assert transport.target == Target("example.com", 80, False)
		assert cxn.getReuseCount() == 0
		res = cxn.request()
		assert cxn.readBody(res.reader) == b"Wikipedia"
		assert cxn.setKeepalive(10.0, 4) is True
		assert cxn.transport is None
		assert pool.has(Target("example.com", 80))
		# A new connection to the same target gets the pooled transport
		other = Connection(factory=MemoryTransport).connect("example.com", 80)
		assert other.transport is transport
		assert other.getReuseCount() == 1
		res = other.request()
		assert other.readBody(res.reader) == b"Hello"


def test_keepalive_pending_body():
	with pooling() as pool:
		cxn, transport = connection(OK_HELLO)
		res = cxn.request()
		res.reader.pull(1)
		with pytest.raises(StateError):
			cxn.setKeepalive()
		assert not pool.has(Target("example.com", 80))


def test_keepalive_read_until_close():
	with pooling() as pool:
		transport = MemoryTransport([b"HTTP/1.0 200 OK\r\n\r\nall the rest"], connected=False)
		cxn = Connection(transport).connect("example.com", 80)
		res = cxn.request(HTTPRequestParams(version=1.0))
		assert cxn.readBody(res.reader) == b"all the rest"
		assert cxn.setKeepalive() is False
		assert not transport.isConnected
		assert not pool.has(Target("example.com", 80))
		other = Connection(factory=MemoryTransport).connect("example.com", 80)
		assert other.transport is not transport


def pooledConnection(*responses: bytes) -> tuple[Connection, MemoryTransport]:
	transport = MemoryTransport([_ for _ in responses], connected=False)
	cxn = Connection(transport).connect("example.com", 80)
	cxn.readBody(cxn.request().reader)
	return cxn, transport


def test_keepalive_full_pool():
	with pooling():
		first, _ = pooledConnection(OK_EMPTY)
		second, transport = pooledConnection(OK_EMPTY)
		assert first.setKeepalive(10.0, 1) is True
		assert second.setKeepalive(10.0, 1) is False
		assert not transport.isConnected


def test_keepalive_expired():
	with pooling() as pool:
		cxn, transport = pooledConnection(OK_EMPTY)
		assert cxn.setKeepalive(-1.0) is True
		assert not pool.has(Target("example.com", 80))
		other = Connection(factory=MemoryTransport).connect("example.com", 80)
		assert other.transport is not transport
		assert not transport.isConnected


def test_timeout():
	cxn, transport = connection(OK_EMPTY)
	cxn.setTimeout(1500)
	assert transport.timeout == 1500


def test_close():
	cxn, transport = connection(OK_HELLO)
	res = cxn.request()
	cxn.close()
	assert not transport.isConnected
	with pytest.raises(TransportError):
		res.reader.pull()
	with pytest.raises(TransportError):
		cxn.request()


# EOF
