from typing import Iterator, Mapping
from urllib.parse import quote_plus

from .model import HTTP_VERSIONS, HTTPRequestParams, THeaderValue, TQuery

EOL: bytes = b"\r\n"


def encodeQuery(query: TQuery | None) -> str:
	"""Returns the query string (without the leading `?`). Mappings are
	percent-encoded, with list values repeating the key."""
	if not query:
		return ""
	elif isinstance(query, str):
		return query[1:] if query.startswith("?") else query
	else:
		return "&".join(
			(
				"&".join(f"{quote_plus(str(k))}={quote_plus(str(_))}" for _ in v)
				if isinstance(v, (list, tuple))
				else f"{quote_plus(str(k))}={quote_plus(str(v))}"
			)
			for k, v in query.items()
		)


def iheaderLines(headers: Mapping[str, THeaderValue]) -> Iterator[bytes]:
	for name, values in headers.items():
		for value in values if isinstance(values, (list, tuple)) else (values,):
			try:
				line = f"{name}: {value}\r\n".encode("latin-1")
			except UnicodeEncodeError as e:
				raise ValueError(f"Header {name!r} cannot be encoded as latin-1: {value!r}") from e
			yield line


def formatRequest(params: HTTPRequestParams) -> bytes:
	"""Formats the request line and the header block of the given
	request, the body is not included."""
	tail = HTTP_VERSIONS.get(params.version)
	if tail is None:
		raise ValueError(f"Unsupported HTTP version: {params.version}")
	query = encodeQuery(params.query)
	line = f"{params.method.upper()} {params.path or '/'}{'?' if query else ''}{query}"
	return b"".join(
		(line.encode("latin-1"), tail, *iheaderLines(params.headers), EOL)
	)


# EOF
