import sys
from httpull.client import Connection
from httpull.http.model import HTTPRequestParams
from httpull.transport import pooling
from httpull.utils.logging import info
from httpull.utils.uri import URI

"""
HTTP Client Example

This demonstrates streaming response bodies with keepalive pooling.
Features shown:
- Pulling the body with a maximum chunk size that grows at every pull
- Trailers, when the server sends some
- Keepalive connections, reused from the pool

Usage:
    python client.py [URL]
    python client.py http://localhost:8000/api/time

Default: http://example.com/
"""


def make_requests(url_str: str, num_requests: int = 3) -> None:
	uri = URI.Parse(url_str)
	info("Starting HTTP client demo", URL=url_str, Requests=num_requests)
	with pooling():
		for i in range(num_requests):
			cxn = Connection().connect(uri.host, uri.port, ssl=uri.ssl)
			res = cxn.request(HTTPRequestParams(path=uri.path, query=uri.query))
			info(
				"Response received",
				Status=res.status,
				Reused=cxn.getReuseCount(),
				Headers=len(res.headers),
			)
			if res.reader:
				size = 256
				while (chunk := res.reader.pull(size)) is not None:
					info("Response data", Size=len(chunk), Preview=str(chunk[:40]))
					size *= 2
				cxn.readTrailers(res.headers)
			# Keep connection alive for all but last request
			if i < num_requests - 1:
				cxn.setKeepalive(idle=10.0)
			else:
				cxn.close()
	info("HTTP client demo completed")


if __name__ == "__main__":
	make_requests(sys.argv[1] if len(sys.argv) > 1 else "http://example.com/")

# EOF
