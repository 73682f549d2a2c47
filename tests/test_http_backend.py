import json

import pytest

from yamlbatch.batch_datatypes import BackendError, QuoteStyle, YamlLibrary
from yamlbatch.batch_http import HttpBackend, http_request
from yamlbatch.batch_interpreter import BatchProcessor
from yamlbatch.batch_memory import DocumentMemory
from yamlbatch.batch_variables import VariableStore


class DummyResp:
    def __init__(self, status, content, headers):
        self.status_code = status
        self._content = content
        self.headers = headers
        self.text = content.decode("utf-8", errors="ignore")

    @property
    def content(self):
        return self._content


def _install_client(monkeypatch, respond):
    """Replace httpx.Client with a stub; `respond(method, url, headers, content)` returns a DummyResp."""
    calls = []

    class DummyClient:
        def __init__(self, *args, **kwargs):
            calls.append(("init", kwargs))

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def request(self, method, url, headers=None, params=None, content=None):
            calls.append((method, url, dict(headers or {}), content))
            return respond(method, url, headers or {}, content)

    import yamlbatch.batch_http as http_mod
    monkeypatch.setattr(http_mod, "httpx", type("X", (), {"Client": DummyClient}))
    monkeypatch.setattr(http_mod.time, "sleep", lambda s: None)
    return calls


def test_http_request_default_success(monkeypatch):
    calls = _install_client(
        monkeypatch,
        lambda m, u, h, c: DummyResp(200, b'{"hello":"world"}', {"Content-Type": "application/json"}),
    )
    out = http_request("GET", "http://example/api", config={"retries": 0, "timeout": 3})
    assert out == {"hello": "world"}
    assert calls[0] == ("init", {"timeout": 3.0, "follow_redirects": True})


def test_http_request_yaml_response(monkeypatch):
    _install_client(
        monkeypatch,
        lambda m, u, h, c: DummyResp(200, b"a: 1\nb: [x]\n", {"Content-Type": "application/yaml"}),
    )
    assert http_request("GET", "http://example/api", config={"retries": 0}) == {"a": 1, "b": ["x"]}


def test_http_request_non_2xx_raises_after_retries(monkeypatch):
    calls = _install_client(monkeypatch, lambda m, u, h, c: DummyResp(500, b"server error", {"Content-Type": "text/plain"}))
    with pytest.raises(RuntimeError) as ei:
        http_request("GET", "http://example/fail", config={"retries": 2})
    assert "HTTP 500" in str(ei.value)
    assert len([c for c in calls if c[0] == "GET"]) == 3


def test_http_request_retry_then_success(monkeypatch):
    answers = [DummyResp(503, b"busy", {}), DummyResp(200, b"[1, 2]", {"Content-Type": "application/json"})]
    _install_client(monkeypatch, lambda m, u, h, c: answers.pop(0))
    assert http_request("GET", "http://example/flaky", config={"retries": 1}) == [1, 2]


def test_parse_args():
    backend = HttpBackend()
    args = backend.parse_args(["POST", "http://x/y", "--header", "X-Token: abc", "--timeout", "1.5",
                               "--retries", "0", "--format", "yaml"])
    assert args.method == "POST"
    assert args.url == "http://x/y"
    assert args.headers == {"X-Token": "abc"}
    assert (args.timeout, args.retries, args.fmt) == (1.5, 0, "yaml")
    assert args.quote_style is QuoteStyle.UNDEFINED
    with pytest.raises(ValueError):
        backend.parse_args(["fetch", "http://x"])
    with pytest.raises(ValueError):
        backend.parse_args(["get", "http://x", "--header", "novalue"])


def test_post_sends_document_in_requested_format(monkeypatch):
    calls = _install_client(
        monkeypatch,
        lambda m, u, h, c: DummyResp(201, b'{"id": 7}', {"Content-Type": "application/json"}),
    )
    backend = HttpBackend(library=YamlLibrary.PYYAML)
    out = backend.process(backend.parse_args(["post", "http://x/items", "--retries", "0"]), {"name": "n"})
    assert out == {"id": 7}
    method, url, headers, content = calls[1]
    assert (method, url) == ("POST", "http://x/items")
    assert headers["Content-Type"].startswith("application/json")
    assert json.loads(content.decode("utf-8")) == {"name": "n"}


def test_put_yaml_body_uses_quote_style(monkeypatch):
    calls = _install_client(monkeypatch, lambda m, u, h, c: DummyResp(204, b"", {}))
    backend = HttpBackend()
    args = backend.parse_args(["put", "http://x/1", "--format", "yaml", "--double-quote", "--retries", "0"])
    backend.process(args, {"k": "v"})
    _, _, headers, content = calls[1]
    assert headers["Content-Type"].startswith("application/yaml")
    assert content.decode("utf-8") == '"k": "v"\n'


def test_http_in_a_script(monkeypatch):
    _install_client(
        monkeypatch,
        lambda m, u, h, c: DummyResp(200, b'{"status": "ok"}', {"Content-Type": "application/json"}),
    )
    p = BatchProcessor(memory=DocumentMemory(), variables=VariableStore(environ={"HOST": "example"}))
    out = p.run_text("http get http://${HOST}/health --retries 0\n")
    assert out == {"status": "ok"}


def test_http_failure_in_a_script_is_backend_error(monkeypatch):
    _install_client(monkeypatch, lambda m, u, h, c: DummyResp(404, b"missing", {}))
    p = BatchProcessor(memory=DocumentMemory(), variables=VariableStore(environ={}))
    assert p.run_text("makeNewRoot x\nhttp get http://example/none --retries 0\n") == {}
    err = p.last_failure
    assert isinstance(err, BackendError)
    assert err.lineno == 2
