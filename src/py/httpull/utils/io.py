from typing import Callable

CR: int = 0x0D


class LineReader:
	"""Buffers the data returned by `recv` so that it can be consumed
	by lines or by exact sizes. `recv` returns an empty bytes value when
	the stream has ended."""

	__slots__ = ["recv", "buffer", "offset", "size", "ended"]

	def __init__(self, recv: Callable[[int], bytes], size: int = 64_000) -> None:
		self.recv: Callable[[int], bytes] = recv
		self.buffer: bytearray = bytearray()
		# Where to resume looking for an end of line
		self.offset: int = 0
		self.size: int = size
		self.ended: bool = False

	def reset(self) -> "LineReader":
		self.buffer.clear()
		self.offset = 0
		self.ended = False
		return self

	def fill(self) -> bool:
		"""Reads more data in the buffer, returns `False` at end of stream."""
		if self.ended:
			return False
		chunk = self.recv(self.size)
		if chunk:
			self.buffer += chunk
			return True
		else:
			self.ended = True
			return False

	def readLine(self) -> bytes | None:
		"""Returns the next line without its `\\n` or `\\r\\n` terminator,
		or `None` if the stream ended before a terminator."""
		while True:
			end = self.buffer.find(b"\n", self.offset)
			if end != -1:
				n = end - 1 if end and self.buffer[end - 1] == CR else end
				line = bytes(self.buffer[:n])
				del self.buffer[: end + 1]
				self.offset = 0
				return line
			self.offset = len(self.buffer)
			if not self.fill():
				return None

	def readExact(self, size: int) -> bytes | None:
		"""Returns exactly `size` bytes, or `None` if the stream ended
		before. The bytes read so far stay in the buffer."""
		while len(self.buffer) < size:
			if not self.fill():
				return None
		res = bytes(self.buffer[:size])
		del self.buffer[:size]
		self.offset = 0
		return res

	def readAll(self) -> bytes:
		"""Reads until the end of the stream."""
		while self.fill():
			pass
		res = bytes(self.buffer)
		self.buffer.clear()
		self.offset = 0
		return res


# EOF
