"""Signed, time-boxed continuation tokens.

A token is the base64url encoding (no padding) of ``{"payload": ...,
"signature": ...}``. The signature is HMAC-SHA256 over the payload serialized
with sorted keys. Validation fails closed, checking in this order: encoding,
signature, expiry, version, action.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import os
import secrets
import time
from typing import TYPE_CHECKING, Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifacts.utils import dumps_json
from errors import TokenInvalid
from rules.config import DEFAULT_SECRET_ENV

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from rules.config import SpanguardConfig

logger = logging.getLogger(__name__)

TOKEN_VERSION = 1
DEFAULT_TTL_SECONDS = 3600

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class NextAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str = ""
    guard: bool = False

    @property
    def action_type(self) -> str:
        return self.id.split(":", 1)[0]


class TokenContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str
    source_token: str | None = None
    results_digest: str | None = None


class TokenPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    issued_at: int
    expires_at: int
    command: str
    action: str
    context: TokenContext
    parameters: dict[str, Any] = Field(default_factory=dict)
    next_actions: tuple[NextAction, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def allowed_actions(self) -> list[str]:
        return [action.id for action in self.next_actions]


def derive_secret(
    repo_root: str | Path,
    *,
    env_var: str = DEFAULT_SECRET_ENV,
    version: int = TOKEN_VERSION,
) -> str:
    """Secret from ``env_var`` when set, else derived from the repository root."""
    configured = os.environ.get(env_var)
    if configured:
        return configured
    material = f"{repo_root}:v{version}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def compute_digest(data: object) -> str:
    """``sha256:<hex>`` over a string, or over the sorted-key JSON of anything else."""
    raw = data.encode("utf-8") if isinstance(data, str) else dumps_json(data, indent=False)
    return f"sha256:{hashlib.sha256(raw).hexdigest()}"


def _base36(value: int) -> str:
    digits: list[str] = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if not value:
            break
    return "".join(reversed(digits))


def generate_request_id(command: str = "generic", *, now: float | None = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"req_{command}_{_base36(millis)}_{random_part}"


def _canonical(payload: dict[str, Any]) -> bytes:
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


def sign_payload(payload: dict[str, Any], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _canonical(payload), hashlib.sha256).hexdigest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


class TokenCodec:
    """Encodes and validates continuation tokens with one secret and TTL."""

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            msg = "token secret must not be empty"
            raise ValueError(msg)
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def for_workspace(
        cls, root: str | Path, config: SpanguardConfig | None = None
    ) -> TokenCodec:
        if config is None:
            return cls(derive_secret(root))
        return cls(
            derive_secret(root, env_var=config.tokens.secret_env),
            ttl_seconds=config.tokens.ttl_seconds,
        )

    def _now(self) -> int:
        return int(self._clock())

    def encode(
        self,
        command: str,
        action: str,
        parameters: dict[str, Any],
        next_actions: Sequence[NextAction],
        *,
        results_digest: str | None = None,
        request_id: str | None = None,
        source_token: str | None = None,
    ) -> str:
        if not command or not action:
            msg = "token payload needs a command and an action"
            raise ValueError(msg)
        issued_at = self._now()
        payload = TokenPayload(
            version=TOKEN_VERSION,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl_seconds,
            command=command,
            action=action,
            context=TokenContext(
                request_id=request_id or generate_request_id(command),
                source_token=source_token,
                results_digest=results_digest,
            ),
            parameters=parameters,
            next_actions=tuple(next_actions),
            metadata={
                "ttl_seconds": self.ttl_seconds,
                "replayable": True,
                "idempotent": True,
            },
        ).model_dump(mode="json")
        envelope = {"payload": payload, "signature": sign_payload(payload, self._secret)}
        return _b64encode(_canonical(envelope))

    def decode(self, token: str) -> tuple[dict[str, Any], str]:
        """Raw payload and signature; raises TokenInvalid on bad encoding."""
        try:
            envelope = orjson.loads(_b64decode(token.strip()))
        except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
            msg = f"Failed to decode token: {exc}"
            raise TokenInvalid(msg, reason="encoding") from exc
        if (
            not isinstance(envelope, dict)
            or not isinstance(envelope.get("payload"), dict)
            or not isinstance(envelope.get("signature"), str)
        ):
            msg = "Failed to decode token: invalid token structure"
            raise TokenInvalid(msg, reason="encoding")
        return envelope["payload"], envelope["signature"]

    def validate(
        self,
        payload: dict[str, Any],
        signature: str,
        *,
        expected_action: str | None = None,
    ) -> TokenPayload:
        expected = sign_payload(payload, self._secret)
        if not hmac.compare_digest(expected, signature):
            msg = "Signature validation failed (token may be tampered with)"
            raise TokenInvalid(msg, reason="signature")
        try:
            parsed = TokenPayload.model_validate(payload)
        except ValidationError as exc:
            msg = f"Invalid token payload: {exc.error_count()} field error(s)"
            raise TokenInvalid(msg, reason="encoding") from exc
        if parsed.expires_at <= self._now():
            raise TokenInvalid("Token expired", reason="expired")
        if parsed.version != TOKEN_VERSION:
            msg = f"Token version mismatch (expected {TOKEN_VERSION}, got {parsed.version})"
            raise TokenInvalid(msg, reason="version")
        allowed = parsed.allowed_actions
        if parsed.action not in {action.split(":", 1)[0] for action in allowed}:
            msg = f"Action '{parsed.action}' not allowed by this token"
            raise TokenInvalid(msg, reason="action")
        if expected_action is not None and expected_action not in allowed:
            msg = f"Action '{expected_action}' not allowed by this token"
            raise TokenInvalid(msg, reason="action")
        return parsed

    def open(self, token: str, *, expected_action: str | None = None) -> TokenPayload:
        """Decode and validate in one step."""
        payload, signature = self.decode(token)
        try:
            return self.validate(payload, signature, expected_action=expected_action)
        except TokenInvalid as exc:
            logger.info("rejected continuation token (%s): %s", exc.reason, exc)
            raise


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "TOKEN_VERSION",
    "NextAction",
    "TokenCodec",
    "TokenContext",
    "TokenPayload",
    "compute_digest",
    "derive_secret",
    "generate_request_id",
    "sign_payload",
]
