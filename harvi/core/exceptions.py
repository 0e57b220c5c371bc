from typing import Optional


class HarviError(Exception):
    """Base class for every error the content core surfaces to a caller.

    Each error knows how it is rendered on the wire: a `kind` from the
    error taxonomy, a more specific `code`, the offending `field`/`id` so the
    admin UI can attribute it, and whether retrying the same request is safe.
    """

    kind = "Error"
    code = "Error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None, id: Optional[str] = None,
                 code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.id = id
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "code": self.code,
            "field": self.field,
            "id": self.id,
            "message": self.message,
            "retryable": self.retryable,
        }


class EntityValidationError(HarviError):
    kind = "ValidationError"
    code = "MissingField"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, id: Optional[str] = None,
                 code: Optional[str] = None, fields: Optional[list] = None):
        super().__init__(message, field=field, id=id, code=code)
        self.fields = fields or ([field] if field else [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.fields:
            body["fields"] = self.fields
        return body


class ReferenceIntegrityError(HarviError):
    kind = "ReferenceError"
    code = "MissingParent"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, id: Optional[str] = None,
                 parent_kind: Optional[str] = None):
        super().__init__(message, field=field, id=id)
        self.parent_kind = parent_kind

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["parentKind"] = self.parent_kind
        return body


class ConflictError(HarviError):
    kind = "ConflictError"
    code = "DuplicateId"
    status_code = 409


class NotFoundError(HarviError):
    kind = "NotFoundError"
    code = "NotFound"
    status_code = 404


class TransactionError(HarviError):
    kind = "TransactionError"
    code = "Aborted"
    status_code = 503
    retryable = True
