import socket
import ssl
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, ClassVar, Iterable, Iterator, NamedTuple, TypeVar, Union

from mypy_extensions import mypyc_attr

from .config import BUFFER, KEEPALIVE_IDLE, KEEPALIVE_SIZE, TIMEOUT
from .http.model import TransportError
from .utils.io import LineReader
from .utils.logging import event, warning

TransportPoolT = TypeVar("TransportPoolT", bound="TransportPool")

# --
# The byte stream transports the client runs on, and the keepalive pool
# they go back to once an exchange is complete.

# -----------------------------------------------------------------------------
#
# SSL
#
# -----------------------------------------------------------------------------

SSL_CLIENT_CONTEXT: ssl.SSLContext = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

try:
	import certifi

	SSL_CLIENT_CONTEXT.load_verify_locations(certifi.where())
except ImportError:
	pass

# -----------------------------------------------------------------------------
#
# TRANSPORTS
#
# -----------------------------------------------------------------------------


class Target(NamedTuple):
	"""A host/port target, used as the key of keepalive pools."""

	host: str
	port: int
	ssl: bool = False


# NOTE: Transports are subclassed by interpreted code (tests, custom
# transports) even when the package is compiled with MyPyC.
@mypyc_attr(allow_interpreted_subclasses=True)
class Transport(ABC):
	"""The byte stream an HTTP exchange runs on. Every receive operation
	raises `TransportError` when the stream fails or ends prematurely."""

	def __init__(self) -> None:
		self.target: Target | None = None
		self.isConnected: bool = False
		# How many times the transport was taken out of a keepalive pool
		self.reused: int = 0

	@abstractmethod
	def connect(self, host: str, port: int, ssl: bool = False) -> "Transport":
		...

	@abstractmethod
	def sendBytes(self, data: bytes) -> int:
		...

	@abstractmethod
	def receiveLine(self) -> bytes:
		"""Reads up to a line terminator, which is not returned."""
		...

	@abstractmethod
	def receiveExact(self, size: int) -> bytes:
		...

	@abstractmethod
	def receiveAll(self) -> bytes:
		"""Reads until the peer closes the stream."""
		...

	@abstractmethod
	def setTimeout(self, timeout: float | None) -> None:
		"""Sets the timeout of all operations, in milliseconds."""
		...

	@abstractmethod
	def close(self) -> None:
		...

	def ensureConnected(self) -> None:
		if not self.isConnected:
			raise TransportError("closed")


class SocketTransport(Transport):
	"""A blocking TCP (or TLS) transport."""

	def __init__(self, *, timeout: float | None = TIMEOUT, buffer: int = BUFFER):
		super().__init__()
		self.socket: socket.socket | None = None
		# In seconds, as expected by sockets
		self.timeout: float | None = timeout
		self.reader: LineReader = LineReader(self._recv, buffer)

	def connect(self, host: str, port: int, ssl: bool = False) -> "SocketTransport":
		if self.isConnected:
			self.close()
		try:
			sock = socket.create_connection((host, port), timeout=self.timeout)
			if ssl:
				sock = SSL_CLIENT_CONTEXT.wrap_socket(sock, server_hostname=host)
		except OSError as e:
			warning("Transport failed to connect", Host=host, Port=port, Error=str(e))
			raise TransportError(f"failed to connect to {host}:{port}: {e}") from e
		self.socket = sock
		self.target = Target(host, port, ssl)
		self.isConnected = True
		self.reader.reset()
		return self

	def _recv(self, size: int) -> bytes:
		if self.socket is None:
			raise TransportError("closed")
		try:
			return self.socket.recv(size)
		except socket.timeout as e:
			raise TransportError("timeout") from e
		except OSError as e:
			raise TransportError(str(e)) from e

	def sendBytes(self, data: bytes) -> int:
		self.ensureConnected()
		assert self.socket is not None  # nosec: B101
		try:
			self.socket.sendall(data)
		except socket.timeout as e:
			raise TransportError("timeout") from e
		except OSError as e:
			raise TransportError(str(e)) from e
		return len(data)

	def receiveLine(self) -> bytes:
		self.ensureConnected()
		line = self.reader.readLine()
		if line is None:
			raise TransportError("closed")
		return line

	def receiveExact(self, size: int) -> bytes:
		self.ensureConnected()
		data = self.reader.readExact(size)
		if data is None:
			raise TransportError("closed")
		return data

	def receiveAll(self) -> bytes:
		self.ensureConnected()
		return self.reader.readAll()

	def setTimeout(self, timeout: float | None) -> None:
		self.timeout = None if timeout is None else timeout / 1000.0
		if self.socket:
			self.socket.settimeout(self.timeout)

	def close(self) -> None:
		self.isConnected = False
		if self.socket is not None:
			try:
				self.socket.close()
			except OSError as e:
				raise TransportError(str(e)) from e
			finally:
				self.socket = None

	def __str__(self) -> str:
		return f"SocketTransport({self.target}, connected={self.isConnected})"


class MemoryTransport(Transport):
	"""A transport that replays the given chunks of bytes as the peer's
	data, and records what is sent in `sent`. The chunking is preserved
	so that partial reads can be exercised."""

	def __init__(self, data: bytes | Iterable[bytes] = b"", *, connected: bool = True):
		super().__init__()
		self.chunks: Iterator[bytes] = iter(
			(data,) if isinstance(data, (bytes, bytearray)) else data
		)
		self.sent: bytearray = bytearray()
		self.timeout: float | None = None
		self.isConnected = connected
		self.reader: LineReader = LineReader(self._recv)

	def _recv(self, size: int) -> bytes:
		return next(self.chunks, b"")

	def connect(self, host: str, port: int, ssl: bool = False) -> "MemoryTransport":
		self.target = Target(host, port, ssl)
		self.isConnected = True
		return self

	def sendBytes(self, data: bytes) -> int:
		self.ensureConnected()
		self.sent += data
		return len(data)

	def receiveLine(self) -> bytes:
		self.ensureConnected()
		line = self.reader.readLine()
		if line is None:
			raise TransportError("closed")
		return line

	def receiveExact(self, size: int) -> bytes:
		self.ensureConnected()
		data = self.reader.readExact(size)
		if data is None:
			raise TransportError("closed")
		return data

	def receiveAll(self) -> bytes:
		self.ensureConnected()
		return self.reader.readAll()

	def setTimeout(self, timeout: float | None) -> None:
		self.timeout = timeout

	def close(self) -> None:
		self.isConnected = False


# -----------------------------------------------------------------------------
#
# KEEPALIVE POOLING
#
# -----------------------------------------------------------------------------


class PooledTransport(NamedTuple):
	transport: Transport
	until: float


class TransportPool:
	"""Context-aware pool of idle transports, keyed by target."""

	All: ClassVar[ContextVar[list["TransportPool"]]] = ContextVar(
		"httpTransportPools"
	)

	@classmethod
	def Get(cls) -> "TransportPool":
		"""Ensures that there's at least one transport pool in the current
		context."""
		pools = cls.All.get(None)
		pool: TransportPool = pools[-1] if pools else TransportPool()
		if pools is None:
			cls.All.set([pool])
		elif not pools:
			pools.append(pool)
		return pool

	@classmethod
	def Push(cls) -> "TransportPool":
		pools = cls.All.get(None)
		if pools is None:
			pools = []
			cls.All.set(pools)
		pool = TransportPool()
		pools.append(pool)
		return pool

	def __init__(self) -> None:
		self.transports: dict[Target, list[PooledTransport]] = {}

	def has(self, target: Target) -> bool:
		now = time.monotonic()
		return any(_.until >= now for _ in self.transports.get(target) or ())

	def get(self, target: Target) -> Union[Transport, None]:
		"""Returns an idle transport to the target, if any. Expired
		transports are closed along the way."""
		pooled = self.transports.get(target)
		now = time.monotonic()
		while pooled:
			p = pooled.pop()
			if p.until >= now and p.transport.isConnected:
				p.transport.reused += 1
				event("transport.reuse", str(target), Reused=p.transport.reused)
				return p.transport
			else:
				self.discard(p.transport)
		return None

	def put(
		self,
		transport: Transport,
		idle: float | None = None,
		size: int | None = None,
	) -> bool:
		"""Puts the transport back into the pool, where it stays available
		for `idle` seconds. Returns `False` when the transport was closed
		instead, because the pool for its target is full or it is not
		connected."""
		target = transport.target
		if not transport.isConnected:
			return False
		if target is None:
			self.discard(transport)
			return False
		pooled = self.transports.setdefault(target, [])
		if len(pooled) >= (KEEPALIVE_SIZE if size is None else size):
			self.discard(transport)
			return False
		pooled.append(
			PooledTransport(
				transport,
				time.monotonic() + (KEEPALIVE_IDLE if idle is None else idle),
			)
		)
		event("transport.pool", str(target), Idle=len(pooled))
		return True

	def discard(self, transport: Transport) -> None:
		try:
			transport.close()
		except TransportError as e:
			warning("Pooled transport failed to close", Error=str(e))

	def clean(self: TransportPoolT) -> TransportPoolT:
		"""Closes expired transports and removes them from the pool."""
		now = time.monotonic()
		for k in [_ for _ in self.transports]:
			pooled = self.transports[k]
			for p in [_ for _ in pooled if _.until < now]:
				pooled.remove(p)
				self.discard(p.transport)
			if not pooled:
				del self.transports[k]
		return self

	def release(self: TransportPoolT) -> TransportPoolT:
		"""Closes all the pooled transports."""
		for pooled in self.transports.values():
			while pooled:
				self.discard(pooled.pop().transport)
		self.transports.clear()
		return self

	def pop(self: TransportPoolT) -> TransportPoolT:
		"""Removes this pool from the context and releases its transports."""
		pools = TransportPool.All.get(None)
		if pools and self in pools:
			pools.remove(self)
		self.release()
		return self

	def __enter__(self: TransportPoolT) -> TransportPoolT:
		return self

	def __exit__(self, type: Any, value: Any, traceback: Any) -> None:
		self.clean()


@contextmanager
def pooling() -> Iterator[TransportPool]:
	"""Creates a context in which transports will be pooled."""
	pool = TransportPool.Push()
	try:
		yield pool
	finally:
		pool.pop()


# EOF
