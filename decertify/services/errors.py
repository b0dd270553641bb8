"""Domain error taxonomy.

Services raise these; the API layer maps them onto HTTP responses via
``status_code`` and renders ``kind`` / ``step`` so a client can decide
whether to fix its input, retry an upload, or reconcile.
"""

from __future__ import annotations


class DecertifyError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, *, step: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Set by the issuance orchestrator to the step that failed.
        self.step = step

    def to_detail(self) -> dict[str, object]:
        detail: dict[str, object] = {"kind": self.kind, "message": self.message}
        if self.step is not None:
            detail["step"] = self.step
        return detail


# --- Local validation errors (caller fixes input, never auto-retried) ---


class InvalidRole(DecertifyError):
    kind = "invalid_role"
    status_code = 403


class NotFound(DecertifyError):
    kind = "not_found"
    status_code = 404


class InvalidTransition(DecertifyError):
    kind = "invalid_transition"
    status_code = 409


class DuplicateRequest(DecertifyError):
    kind = "duplicate_request"
    status_code = 400


class IdentityExists(DecertifyError):
    kind = "identity_exists"
    status_code = 409


class ValidationFailed(DecertifyError):
    kind = "validation_failed"
    status_code = 422


# --- Document transform ---


class MalformedDocument(DecertifyError):
    kind = "malformed_document"
    status_code = 422


class EncodingError(DecertifyError):
    kind = "encoding_error"
    status_code = 422


# --- Content store ---


class UploadFailed(DecertifyError):
    kind = "upload_failed"
    status_code = 502


# --- Issuance ---


class PartialIssuance(DecertifyError):
    """Both uploads succeeded but the record was not marked issued.

    Do not rerun the whole pipeline; re-read the request and, if it is
    still ``accepted``, retry only the final step with ``content_id``.
    """

    kind = "partial_issuance"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        content_id: str,
        original_content_id: str,
        step: str | None = None,
    ) -> None:
        super().__init__(message, step=step)
        self.content_id = content_id
        self.original_content_id = original_content_id

    def to_detail(self) -> dict[str, object]:
        detail = super().to_detail()
        detail["content_id"] = self.content_id
        detail["original_content_id"] = self.original_content_id
        return detail
