"""Next-action tokens for search and importer results, and token resume.

``resume`` re-runs the query a token came from, recomputes the results
digest and reports ``RESULTS_DIGEST_MISMATCH`` when the workspace changed.
The response still carries the best match metadata available: the replayed
match when the query still yields one, otherwise the snapshot stored in the
token.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from continuation.codec import NextAction, TokenCodec, compute_digest, generate_request_id
from errors import NoMatch, TokenInvalid
from relations.analyzer import RelationshipAnalyzer
from relations.session import AnalysisSession
from scan.search import SearchOptions, search_workspace
from slicing.context import build_context

if TYPE_CHECKING:
    from extract.records import FunctionRecord
    from relations.analyzer import ImportsResult
    from rules.config import SpanguardConfig
    from scan.search import SearchMatch, SearchResult

logger = logging.getLogger(__name__)

SEARCH_COMMAND = "search"
RELATIONSHIP_COMMAND = "relationships"
DIGEST_MISMATCH = "RESULTS_DIGEST_MISMATCH"


class IssuedTokens(BaseModel):
    """Next actions for one result set, each with its own token."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    results_digest: str
    next_actions: tuple[NextAction, ...] = ()
    tokens: dict[str, str] = Field(default_factory=dict)


class DigestWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = DIGEST_MISMATCH
    message: str
    expected_digest: str
    actual_digest: str


class ContinuationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_token: str
    issued_at: int
    expires_at: int
    available_actions: tuple[NextAction, ...] = ()


class NextToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str


class ResumeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "token_accepted"
    action: str
    scope: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    match: dict[str, Any] | None = None
    continuation: ContinuationInfo
    next_tokens: tuple[NextToken, ...] = ()
    warnings: tuple[DigestWarning, ...] = ()
    analysis: dict[str, Any] | None = None
    context: dict[str, Any] | None = None
    trace: dict[str, Any] | None = None
    relationship: dict[str, Any] | None = None


# --- issuing ----------------------------------------------------------------


def match_snapshot(match: SearchMatch, scope: Path) -> dict[str, Any]:
    return {
        "file": str(scope / match.file),
        "relative_file": match.file,
        "name": match.name,
        "canonical_name": match.canonical_name,
        "kind": match.kind,
        "hash": match.hash,
        "path_signature": match.path_signature,
        "line": match.line,
        "column": match.column,
        "exported": match.exported,
        "selector_hint": f"hash:{match.hash}",
    }


def search_next_actions(result: SearchResult) -> list[NextAction]:
    actions: list[NextAction] = []
    for idx, match in enumerate(result.matches):
        actions.append(
            NextAction(
                id=f"analyze:{idx}",
                label=f"Analyze match #{idx}",
                description=f"Show detailed info about {match.canonical_name}",
            )
        )
    for idx, match in enumerate(result.matches):
        actions.append(
            NextAction(
                id=f"context:{idx}",
                label=f"Context for match #{idx}",
                description=f"Show padded source around {match.canonical_name}",
            )
        )
    if result.matches:
        actions.append(
            NextAction(id="trace:0", label="Trace calls", description="Show calls made by first match")
        )
    return actions


def _parse_index(action_id: str) -> int:
    _, _, suffix = action_id.partition(":")
    try:
        return int(suffix)
    except ValueError:
        return 0


def issue_search_tokens(
    codec: TokenCodec, session: AnalysisSession, result: SearchResult
) -> IssuedTokens:
    """One token per next action of a search result."""
    actions = search_next_actions(result)
    digest = compute_digest(result)
    request_id = generate_request_id(SEARCH_COMMAND)
    tokens: dict[str, str] = {}
    for action in actions:
        index = _parse_index(action.id)
        match = result.matches[index] if index < len(result.matches) else None
        parameters = {
            "search": " ".join(result.terms),
            "search_terms": list(result.terms),
            "options": result.options.model_dump(mode="json"),
            "scope": str(session.root),
            "match_index": index,
            "match": match_snapshot(match, session.root) if match is not None else None,
        }
        tokens[action.id] = codec.encode(
            SEARCH_COMMAND,
            action.action_type,
            parameters,
            actions,
            results_digest=digest,
            request_id=request_id,
        )
    return IssuedTokens(
        request_id=request_id, results_digest=digest, next_actions=tuple(actions), tokens=tokens
    )


def issue_importer_tokens(
    codec: TokenCodec, session: AnalysisSession, result: ImportsResult
) -> IssuedTokens:
    """One ``importer:<i>`` token per importer of a what-imports result."""
    actions = [
        NextAction(
            id=f"importer:{idx}",
            label=f"Inspect importer #{idx}",
            description=f"Inspect {Path(entry.file).name}",
        )
        for idx, entry in enumerate(result.importers)
    ]
    digest = compute_digest(result)
    request_id = generate_request_id(RELATIONSHIP_COMMAND)
    tokens = {
        action.id: codec.encode(
            RELATIONSHIP_COMMAND,
            action.action_type,
            {
                "relationship": "what-imports",
                "target": result.target,
                "scope": str(session.root),
                "entry_index": _parse_index(action.id),
            },
            actions,
            results_digest=digest,
            request_id=request_id,
        )
        for action in actions
    }
    return IssuedTokens(
        request_id=request_id, results_digest=digest, next_actions=tuple(actions), tokens=tokens
    )


# --- resuming ---------------------------------------------------------------


def _digest_warnings(expected: str | None, actual: str | None) -> list[DigestWarning]:
    if not expected or not actual or expected == actual:
        return []
    return [
        DigestWarning(
            message=(
                "Results changed since this token was issued. "
                "Re-run the originating query to refresh selectors and tokens."
            ),
            expected_digest=expected,
            actual_digest=actual,
        )
    ]


def _find_record(
    session: AnalysisSession, match: dict[str, Any]
) -> tuple[Path, FunctionRecord]:
    path = session.resolve_path(match["relative_file"])
    if not path.is_file():
        msg = f"file {match['relative_file']} no longer exists"
        raise NoMatch(match["canonical_name"], msg)
    extraction = session.extraction(path)
    for record in extraction.functions:
        if record.hash == match["hash"]:
            return path, record
    record = extraction.find_by_path(match["path_signature"], "function")
    if record is None:
        raise NoMatch(match["canonical_name"])
    return path, record


def resume(
    token: str,
    codec: TokenCodec,
    *,
    config: SpanguardConfig | None = None,
    scope: str | Path | None = None,
    session: AnalysisSession | None = None,
) -> ResumeResponse:
    """Validate ``token``, replay its query and run its action."""
    payload = codec.open(token)
    params = payload.parameters
    if session is None:
        root = Path(scope or params.get("scope") or ".")
        session = AnalysisSession(root, config=config)

    relationship = params.get("relationship")
    match: dict[str, Any] | None
    if relationship == "what-imports":
        analyzer = RelationshipAnalyzer(session)
        replay = analyzer.what_imports(params.get("target", ""))
        actual = compute_digest(replay)
        index = int(params.get("entry_index", 0))
        entry = replay.importers[index] if index < len(replay.importers) else None
        match = entry.model_dump(mode="json") if entry is not None else None
    elif relationship is None:
        options = SearchOptions.model_validate(params.get("options") or {})
        replay_search = search_workspace(session, params.get("search_terms") or [], options)
        actual = compute_digest(replay_search)
        index = int(params.get("match_index", 0))
        if index < len(replay_search.matches):
            match = match_snapshot(replay_search.matches[index], session.root)
        else:
            match = params.get("match")
    else:
        msg = f"unknown relationship '{relationship}' in token"
        raise TokenInvalid(msg, reason="action")

    warnings = _digest_warnings(payload.context.results_digest, actual)
    for warning in warnings:
        logger.warning("%s: %s", warning.code, warning.message)

    response: dict[str, Any] = {
        "action": payload.action,
        "scope": str(session.root),
        "parameters": {
            key: params.get(key)
            for key in ("search", "search_terms", "match_index", "relationship", "target", "entry_index")
            if key in params
        },
        "match": match,
        "continuation": ContinuationInfo(
            source_token=token,
            issued_at=payload.issued_at,
            expires_at=payload.expires_at,
            available_actions=payload.next_actions,
        ),
        "next_tokens": tuple(NextToken(id=a.id, label=a.label) for a in payload.next_actions),
        "warnings": tuple(warnings),
    }

    if payload.action == "importer":
        if match is None:
            msg = "Relationship entry unavailable; rerun the query to refresh tokens."
            raise NoMatch(str(params.get("target")), msg)
        response["relationship"] = {
            "type": relationship,
            "target": params.get("target"),
            "entry_index": params.get("entry_index", 0),
            "entry": match,
        }
        return ResumeResponse(**response)

    if match is None:
        msg = "Match metadata unavailable; rerun the search to refresh this token."
        raise NoMatch(str(params.get("search")), msg)

    if payload.action == "analyze":
        response["analysis"] = {
            "file": match["relative_file"],
            "hash": match["hash"],
            "name": match["canonical_name"],
            "kind": match["kind"],
            "line": match["line"],
            "exported": match["exported"],
            "selector_hint": match["selector_hint"],
        }
    elif payload.action == "context":
        path, record = _find_record(session, match)
        padding = session.config.context.padding
        result = build_context(
            [record],
            session.source(path),
            before=padding,
            after=padding,
            file=session.relative(path),
            selector=match["selector_hint"],
        )
        response["context"] = result.model_dump(mode="json")
    elif payload.action == "trace":
        trace = RelationshipAnalyzer(session).what_calls(
            match["canonical_name"], file=match["relative_file"]
        )
        response["trace"] = trace.model_dump(mode="json")
    else:
        msg = f"Action '{payload.action}' cannot be resumed"
        raise TokenInvalid(msg, reason="action")
    return ResumeResponse(**response)


__all__ = [
    "DIGEST_MISMATCH",
    "DigestWarning",
    "IssuedTokens",
    "ResumeResponse",
    "issue_importer_tokens",
    "issue_search_tokens",
    "match_snapshot",
    "resume",
    "search_next_actions",
]