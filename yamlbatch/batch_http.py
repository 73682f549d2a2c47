"""
The `http` backend family: exchange the current document with a web service.

    http get|post|put|delete URL [--header K:V]... [--timeout S] [--retries N]
         [--format json|yaml]

post and put send the current document as the request body; the response
body, decoded by its content type, becomes the next document.
"""
import argparse
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from yamlbatch.batch_backends import Backend, BackendArgs
from yamlbatch.batch_datatypes import QuoteStyle, YamlLibrary
from yamlbatch.batch_serialize import deserialize, serialize

_CONTENT_TYPES = {
    'json': 'application/json; charset=utf-8',
    'yaml': 'application/yaml; charset=utf-8',
}


def http_request(method: str, url: str, *, config: Optional[Dict] = None, data: Optional[str] = None,
                 library: YamlLibrary = YamlLibrary.PYYAML) -> Any:
    """
    Core HTTP helper.

    Returns the deserialized body on 2xx; raises on non-2xx once retries are used up.
    Retries back off exponentially from `backoff` seconds.
    """
    cfg = config or {}
    attempts = 1 + max(0, int(cfg.get('retries', 2)))
    backoff = float(cfg.get('backoff', 0.2))
    headers = dict(cfg.get('headers', {}))
    body = None
    if data is not None:
        body = data.encode('utf-8')
        headers.setdefault("Content-Type", "text/plain; charset=utf-8")

    with httpx.Client(timeout=float(cfg.get('timeout', 5.0)), follow_redirects=True) as client:
        for attempt in range(attempts):
            try:
                resp = client.request(method.upper(), url, headers=headers,
                                      params=dict(cfg.get('params', {})), content=body)
                if not 200 <= resp.status_code < 300:
                    raise RuntimeError(f"HTTP {resp.status_code} for {method.upper()} {url}: {(resp.text or '')[:200]}")
                return deserialize(resp.content, content_type=resp.headers.get("Content-Type"), library=library)
            except Exception:
                if attempt + 1 == attempts:
                    raise
                time.sleep(backoff * (2 ** attempt))


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise ValueError(message)


def _header(text: str):
    key, sep, value = text.partition(":")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"header must look like Name:Value, got {text!r}")
    return key.strip(), value.strip()


@dataclass
class HttpArgs(BackendArgs):
    method: str = "GET"
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 5.0
    retries: int = 2
    fmt: str = "json"


def _build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(prog="http", add_help=False)
    p.add_argument("method", type=str.lower, choices=["get", "post", "put", "delete"])
    p.add_argument("url")
    p.add_argument("--header", "-H", action="append", type=_header, default=[])
    p.add_argument("--timeout", type=float, default=5.0)
    p.add_argument("--retries", type=int, default=2)
    p.add_argument("--format", dest="fmt", choices=["json", "yaml"], default="json")
    quotes = p.add_mutually_exclusive_group()
    for style in (QuoteStyle.PLAIN, QuoteStyle.SINGLE_QUOTED, QuoteStyle.DOUBLE_QUOTED):
        quotes.add_argument(style.value, dest="quote_style", action="store_const", const=style)
    p.add_argument("-v", "--verbose", action="store_true")
    return p


class HttpBackend(Backend):
    keyword = "http"

    def parse_args(self, tokens: List[str]) -> HttpArgs:
        ns = _build_parser().parse_args(tokens)
        return HttpArgs(
            command=ns.method,
            method=ns.method.upper(),
            url=ns.url,
            headers=dict(ns.header),
            timeout=ns.timeout,
            retries=ns.retries,
            fmt=ns.fmt,
            quote_style=ns.quote_style or QuoteStyle.UNDEFINED,
            verbose=ns.verbose,
        )

    def process(self, args: HttpArgs, document: Any) -> Any:
        config = {'timeout': args.timeout, 'retries': args.retries, 'headers': dict(args.headers)}
        data = None
        if args.method in ("POST", "PUT"):
            data = serialize(document, fmt=args.fmt, library=self.library, quote_style=args.quote_style)
            config['headers'].setdefault("Content-Type", _CONTENT_TYPES[args.fmt])
        return http_request(args.method, args.url, config=config, data=data, library=self.library)
