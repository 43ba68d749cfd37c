import re
from typing import NamedTuple

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

RE_URI: re.Pattern[str] = re.compile(
	r"^(https?)://([^:/?#]+)(?::(\d+))?(/[^?#]*)?(?:\?([^#]*))?(?:#.*)?$",
	re.IGNORECASE,
)


class URI(NamedTuple):
	"""An absolute `http(s)://` URI, split in the parts needed to issue
	a request."""

	scheme: str
	host: str
	port: int
	path: str = "/"
	query: str | None = None

	@classmethod
	def Parse(cls, link: "URI|str") -> "URI":
		if isinstance(link, URI):
			return link
		m = RE_URI.match(link.strip())
		if not m:
			raise ValueError(f"bad uri: {link!r}")
		scheme = m.group(1).lower()
		return URI(
			scheme=scheme,
			host=m.group(2),
			port=int(m.group(3)) if m.group(3) else DEFAULT_PORTS[scheme],
			path=m.group(4) or "/",
			query=m.group(5) or None,
		)

	@property
	def ssl(self) -> bool:
		return self.scheme == "https"

	def __str__(self) -> str:
		port = "" if DEFAULT_PORTS[self.scheme] == self.port else f":{self.port}"
		query = f"?{self.query}" if self.query else ""
		return f"{self.scheme}://{self.host}{port}{self.path}{query}"


# EOF
