"""Continuation tokens for resumable multi-step workflows."""

from continuation.codec import (
    NextAction,
    TokenCodec,
    TokenPayload,
    compute_digest,
    derive_secret,
    generate_request_id,
)
from continuation.replay import (
    DIGEST_MISMATCH,
    ResumeResponse,
    issue_importer_tokens,
    issue_search_tokens,
    resume,
)

__all__ = [
    "DIGEST_MISMATCH",
    "NextAction",
    "ResumeResponse",
    "TokenCodec",
    "TokenPayload",
    "compute_digest",
    "derive_secret",
    "generate_request_id",
    "issue_importer_tokens",
    "issue_search_tokens",
    "resume",
]
