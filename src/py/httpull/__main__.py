import argparse
import sys
from typing import Sequence

from .client import Connection
from .http.model import HTTPClientError, HTTPRequestParams, THeaderValue
from .utils.logging import error, info
from .utils.uri import URI


def parseHeaders(values: Sequence[str]) -> dict[str, THeaderValue]:
	"""Parses `Name: value` options, repeated names give a list."""
	res: dict[str, THeaderValue] = {}
	for value in values:
		name, sep, rest = value.partition(":")
		if not sep or not name.strip():
			raise ValueError(f"Malformed header, expected 'Name: value': {value!r}")
		name = name.strip()
		existing = res.get(name)
		if existing is None:
			res[name] = rest.strip()
		elif isinstance(existing, list):
			existing.append(rest.strip())
		else:
			res[name] = [str(existing), rest.strip()]
	return res


def run(args: Sequence[str] | None = None) -> int:
	oparser = argparse.ArgumentParser(
		prog="httpull",
		description="Performs an HTTP/1.x request and streams the response body to stdout",
	)
	oparser.add_argument("url", help="An http:// or https:// URL")
	oparser.add_argument("-X", "--method", default="GET")
	oparser.add_argument(
		"-H", "--header", action="append", default=[], help="'Name: value' header"
	)
	oparser.add_argument("-d", "--data", help="Request body")
	oparser.add_argument(
		"--chunk", type=int, default=None, help="Maximum size of each body chunk"
	)
	oparser.add_argument("--http10", action="store_true", help="Uses HTTP/1.0")
	oparser.add_argument(
		"-i", "--include", action="store_true", help="Writes the headers to stderr"
	)
	oparser.add_argument("--timeout", type=float, default=None, help="In seconds")
	options = oparser.parse_args(args)
	try:
		uri = URI.Parse(options.url)
		params = HTTPRequestParams(
			method=options.method,
			path=uri.path,
			query=uri.query,
			version=1.0 if options.http10 else 1.1,
			headers=parseHeaders(options.header),
			body=options.data.encode("utf8") if options.data is not None else None,
		)
	except ValueError as e:
		error("Invalid arguments", Error=str(e))
		return 2
	cxn = Connection()
	if options.timeout is not None:
		cxn.setTimeout(options.timeout * 1000)
	out = sys.stdout.buffer
	try:
		cxn.connect(uri.host, uri.port, ssl=uri.ssl)
		res = cxn.request(params)
		if options.include:
			sys.stderr.write(f"HTTP/{res.version} {res.status} {res.message}\n")
			for k, v in res.headers.items():
				sys.stderr.write(f"{k}: {v}\n")
		if res.reader:
			for chunk in res.reader.iter(options.chunk):
				out.write(chunk)
			out.flush()
			cxn.readTrailers(res.headers)
		info("Response complete", Status=res.status, Read=res.reader.received if res.reader else 0)
	except HTTPClientError as e:
		error("Request failed", e.__class__.__name__, URL=str(uri), Error=str(e))
		return 2
	finally:
		if cxn.transport and cxn.transport.isConnected:
			cxn.close()
	return 0 if res.status < 400 else 1


def main() -> None:
	sys.exit(run())


if __name__ == "__main__":
	main()

# EOF
