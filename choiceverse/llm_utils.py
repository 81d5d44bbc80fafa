"""Helper utilities for LLM-related error handling and retries.

Choice modules are synchronous (they may run inside worker threads), so the
structured call here is synchronous too: a mirascope call wrapped in tenacity
``Retrying``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from .logging_utils import LOG_TAG_ERROR, LOG_TAG_LLM, log_error, log_llm


ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed LLM schema outputs."""

    llm_text: str
    issues: Sequence[str]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into retry guidance for the model.

    Each issue names the field path (dot notation), the message, the error
    type and a short preview of the rejected value.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):  # pragma: no branch - typically small
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        msg = err.get("msg", "validation error")
        err_type = err.get("type")
        preview = None
        if "input" in err:
            preview = _truncate_preview(err.get("input"))

        details = f"{loc}: {msg}"
        if err_type:
            details += f" [type={err_type}]"
        if preview not in (None, ""):
            details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences; return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def _log_validation_failure(
    *,
    model_name: str,
    attempt: int,
    max_attempts: int,
    feedback: ValidationFeedback,
) -> None:
    """Print user-facing diagnostics for a failed validation attempt."""

    log_error(
        f"  {LOG_TAG_ERROR} LLM schema validation failed for {model_name} "
        f"(attempt {attempt}/{max_attempts})."
    )
    for issue in feedback.issues:
        print(f"    - {issue}")


def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured LLM call with validation-aware retries.

    Only pydantic ValidationError triggers a retry; provider, network and auth
    errors propagate immediately. On a validation failure the feedback is
    appended to the original user prompt (not substituted for it) so the model
    keeps full context. After ``max_attempts`` the last error is re-raised.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()

    def _build_prompt(feedback_payload: ValidationFeedback | None) -> str:
        sections: list[str] = []
        if system_prompt:
            sections.append(system_prompt)
        if base_user_prompt:
            sections.append(base_user_prompt)
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(sections)

    feedback_payload: ValidationFeedback | None = None

    @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
    def _invoke(prompt: str) -> str:
        return prompt

    attempt_number = 0
    for attempt in Retrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_llm(
                    f"  {LOG_TAG_LLM} LLM retry {attempt_number}/{max_attempts} for "
                    f"{response_model.__name__}; attempting schema correction."
                )
            try:
                return _invoke(_build_prompt(feedback_payload))
            except ValidationError as exc:  # pragma: no cover - retry path
                feedback_payload = feedback_builder(exc)
                _log_validation_failure(
                    model_name=response_model.__name__,
                    attempt=attempt_number,
                    max_attempts=max_attempts,
                    feedback=feedback_payload,
                )
                raise

    # Retrying with reraise=True always exits via return or raise.
    raise RuntimeError("LLM retry mechanism exited unexpectedly")


__all__ = ["ValidationFeedback", "inject_validation_feedback", "call_llm_with_retries"]
