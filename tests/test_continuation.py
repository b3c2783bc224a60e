from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from continuation.codec import (
    TOKEN_VERSION,
    NextAction,
    TokenCodec,
    compute_digest,
    derive_secret,
    generate_request_id,
    sign_payload,
)
from continuation.replay import (
    DIGEST_MISMATCH,
    issue_importer_tokens,
    issue_search_tokens,
    resume,
)
from errors import TokenInvalid
from relations.analyzer import RelationshipAnalyzer
from relations.session import AnalysisSession
from scan.search import search_workspace

if TYPE_CHECKING:
    from pathlib import Path

SECRET = "test-secret"

CONFIG_JS = """\
export function loadConfig() {
  return parseConfig();
}
function parseConfig() {}
"""


class _Clock:
    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _write_js_file(root: Path, rel: str, content: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _token(codec: TokenCodec, action: str = "analyze") -> str:
    return codec.encode(
        "search",
        action,
        {"search": "config"},
        [NextAction(id="analyze:0", label="Analyze match #0")],
    )


def test_round_trip() -> None:
    clock = _Clock()
    codec = TokenCodec(SECRET, ttl_seconds=60, clock=clock)

    payload = codec.open(_token(codec))

    assert payload.version == TOKEN_VERSION
    assert payload.command == "search"
    assert payload.action == "analyze"
    assert payload.expires_at - payload.issued_at == 60
    assert payload.allowed_actions == ["analyze:0"]
    assert payload.parameters == {"search": "config"}
    assert payload.context.request_id.startswith("req_search_")
    assert payload.metadata["replayable"] is True


def test_garbage_fails_on_encoding() -> None:
    codec = TokenCodec(SECRET)

    with pytest.raises(TokenInvalid) as excinfo:
        codec.open("garbage")

    assert excinfo.value.reason == "encoding"


def test_tampered_payload_fails_on_signature() -> None:
    codec = TokenCodec(SECRET)
    payload, signature = codec.decode(_token(codec))
    payload["parameters"] = {"search": "other"}

    with pytest.raises(TokenInvalid) as excinfo:
        codec.validate(payload, signature)

    assert excinfo.value.reason == "signature"


def test_other_secret_fails_on_signature() -> None:
    token = _token(TokenCodec(SECRET))

    with pytest.raises(TokenInvalid) as excinfo:
        TokenCodec("another-secret").open(token)

    assert excinfo.value.reason == "signature"


def test_expired_token() -> None:
    clock = _Clock()
    codec = TokenCodec(SECRET, ttl_seconds=10, clock=clock)
    token = _token(codec)

    clock.now += 10

    with pytest.raises(TokenInvalid) as excinfo:
        codec.open(token)

    assert excinfo.value.reason == "expired"


def test_version_checked_after_signature() -> None:
    codec = TokenCodec(SECRET)
    payload, _ = codec.decode(_token(codec))
    payload["version"] = TOKEN_VERSION + 1

    with pytest.raises(TokenInvalid) as excinfo:
        codec.validate(payload, sign_payload(payload, SECRET))

    assert excinfo.value.reason == "version"


def test_action_must_be_offered() -> None:
    codec = TokenCodec(SECRET)

    with pytest.raises(TokenInvalid) as excinfo:
        codec.open(_token(codec, action="trace"))
    assert excinfo.value.reason == "action"

    with pytest.raises(TokenInvalid) as excinfo:
        codec.open(_token(codec), expected_action="context:0")
    assert excinfo.value.reason == "action"


def test_helpers(monkeypatch: pytest.MonkeyPatch) -> None:
    assert compute_digest("abc") == compute_digest("abc")
    assert compute_digest({"b": 1, "a": 2}) == compute_digest({"a": 2, "b": 1})
    assert compute_digest("abc").startswith("sha256:")

    monkeypatch.delenv("SPANGUARD_SECRET", raising=False)
    assert derive_secret("/repo") == derive_secret("/repo")
    assert derive_secret("/repo") != derive_secret("/other")
    monkeypatch.setenv("SPANGUARD_SECRET", "from-env")
    assert derive_secret("/repo") == "from-env"

    assert generate_request_id("search", now=0).startswith("req_search_0_")

    with pytest.raises(ValueError):
        TokenCodec("")


def _search_tokens(root: Path):
    _write_js_file(root, "src/config.js", CONFIG_JS)
    session = AnalysisSession(root)
    codec = TokenCodec(SECRET)
    result = search_workspace(session, "config")
    return codec, issue_search_tokens(codec, session, result)


def test_issue_search_tokens(tmp_path: Path) -> None:
    _, issued = _search_tokens(tmp_path)

    assert list(issued.tokens) == ["analyze:0", "analyze:1", "context:0", "context:1", "trace:0"]
    assert issued.results_digest.startswith("sha256:")


def test_resume_analyze(tmp_path: Path) -> None:
    codec, issued = _search_tokens(tmp_path)

    response = resume(issued.tokens["analyze:1"], codec, session=AnalysisSession(tmp_path))

    assert response.status == "token_accepted"
    assert response.warnings == ()
    assert response.analysis is not None
    assert response.analysis["name"] == "parseConfig"
    assert response.analysis["file"] == "src/config.js"
    assert response.parameters["search_terms"] == ["config"]
    assert [t.id for t in response.next_tokens] == list(issued.tokens)


def test_resume_context_and_trace(tmp_path: Path) -> None:
    codec, issued = _search_tokens(tmp_path)

    context = resume(issued.tokens["context:1"], codec, session=AnalysisSession(tmp_path))
    assert context.context is not None
    assert context.context["entries"][0]["base"] == "function parseConfig() {}"

    trace = resume(issued.tokens["trace:0"], codec, session=AnalysisSession(tmp_path))
    assert trace.trace is not None
    assert trace.trace["function"] == "exports.loadConfig"
    assert [c["callee"] for c in trace.trace["callees"]] == ["parseConfig"]


def test_resume_warns_when_results_changed(tmp_path: Path) -> None:
    codec, issued = _search_tokens(tmp_path)
    _write_js_file(tmp_path, "src/extra.js", "function configure() {}\n")

    response = resume(issued.tokens["analyze:0"], codec, session=AnalysisSession(tmp_path))

    assert [w.code for w in response.warnings] == [DIGEST_MISMATCH]
    assert response.warnings[0].expected_digest == issued.results_digest
    assert response.match is not None
    assert response.match["name"] == "configure"


def test_resume_warns_when_matched_file_is_edited(tmp_path: Path) -> None:
    codec, issued = _search_tokens(tmp_path)
    original_hash = resume(
        issued.tokens["analyze:1"], codec, session=AnalysisSession(tmp_path)
    ).match["hash"]
    _write_js_file(
        tmp_path, "src/config.js", CONFIG_JS.replace("parseConfig() {}", "parseConfig() { return 1; }")
    )

    response = resume(issued.tokens["analyze:1"], codec, session=AnalysisSession(tmp_path))

    assert [w.code for w in response.warnings] == [DIGEST_MISMATCH]
    assert response.match is not None
    assert response.match["name"] == "parseConfig"
    assert response.match["hash"] != original_hash
    assert response.analysis is not None
    assert response.analysis["name"] == "parseConfig"


def test_resume_importer_token(tmp_path: Path) -> None:
    _write_js_file(tmp_path, "src/util.js", "export function helper() {}\n")
    _write_js_file(tmp_path, "src/a.js", 'import { helper } from "./util";\n')
    _write_js_file(tmp_path, "src/b.js", 'const util = require("./util");\n')
    session = AnalysisSession(tmp_path)
    codec = TokenCodec(SECRET)
    issued = issue_importer_tokens(
        codec, session, RelationshipAnalyzer(session).what_imports("src/util.js")
    )

    assert list(issued.tokens) == ["importer:0", "importer:1"]

    response = resume(issued.tokens["importer:1"], codec, session=AnalysisSession(tmp_path))

    assert response.relationship is not None
    assert response.relationship["entry"]["file"] == "src/b.js"
    assert response.warnings == ()
