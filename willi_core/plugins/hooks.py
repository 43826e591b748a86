"""
Hook payload contracts owned by the host application.

The registry itself broadcasts any hook name with any arguments. These models
give the host one typed payload per domain hook, so plugins only handle the
hooks they implement and get validated data:

    await registry.dispatch(DocumentUploaded(document_id="d-1", title="GPKE 2025", user_id="u-7"))

    class Tagger(BasePlugin):
        async def on_document_uploaded(self, payload: DocumentUploaded, context) -> None:
            ...
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "HOOK_PAYLOADS",
    "DocumentUploaded",
    "HookPayload",
    "QuizAttemptCompleted",
    "UserCreated",
    "UserLogin",
    "build_payload",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HookPayload(BaseModel):
    """Base payload; subclasses bind themselves to a hook name."""

    model_config = ConfigDict(frozen=True)

    hook_name: ClassVar[str]
    occurred_at: datetime = Field(default_factory=_utcnow)


class UserCreated(HookPayload):
    hook_name: ClassVar[str] = "on_user_created"

    user_id: str
    username: str
    email: str | None = None
    role: str = "user"


class UserLogin(HookPayload):
    hook_name: ClassVar[str] = "on_user_login"

    user_id: str
    username: str


class DocumentUploaded(HookPayload):
    hook_name: ClassVar[str] = "on_document_uploaded"

    document_id: str
    title: str
    user_id: str | None = None
    mime_type: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class QuizAttemptCompleted(HookPayload):
    hook_name: ClassVar[str] = "on_quiz_attempt_completed"

    attempt_id: str
    quiz_id: str
    user_id: str
    score: float
    max_score: float | None = None


HOOK_PAYLOADS: dict[str, type[HookPayload]] = {
    model.hook_name: model
    for model in (UserCreated, UserLogin, DocumentUploaded, QuizAttemptCompleted)
}


def build_payload(hook_name: str, data: Mapping[str, Any] | None = None) -> HookPayload:
    """Validate raw event data into the payload bound to `hook_name`.

    Raises:
        ValueError: Unknown hook name
        pydantic.ValidationError: Data does not match the payload model
    """
    model = HOOK_PAYLOADS.get(hook_name)
    if model is None:
        raise ValueError(f"Unknown hook: {hook_name} (known: {', '.join(sorted(HOOK_PAYLOADS))})")
    return model.model_validate(dict(data or {}))
