import socket
import threading
from typing import Callable

import pytest


def serve(response: bytes) -> tuple[int, list[bytes]]:
	"""Starts a one-shot server on the loopback interface, that replies with
	`response` and closes the connection. Returns the port and the list
	the received request head is appended to."""
	server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
	server.bind(("127.0.0.1", 0))
	server.listen(1)
	received: list[bytes] = []

	def run() -> None:
		client, _ = server.accept()
		try:
			data = b""
			while b"\r\n\r\n" not in data:
				chunk = client.recv(4096)
				if not chunk:
					break
				data += chunk
			received.append(data)
			client.sendall(response)
		finally:
			client.close()
			server.close()

	threading.Thread(target=run, daemon=True).start()
	return server.getsockname()[1], received


@pytest.fixture
def server() -> Callable[[bytes], tuple[int, list[bytes]]]:
	return serve


# EOF
