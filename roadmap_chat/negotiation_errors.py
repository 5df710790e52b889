# roadmap_chat/negotiation_errors.py

"""
Error taxonomy for the roadmap negotiation engine.

Every error has a stable `kind` (what went wrong) and a `category` telling the
caller what to do about it:
  - "fix_request"   -> InputError, NotFoundError
  - "misconfigured" -> CredentialError
  - "retry"         -> ServiceError, ParseError, SchemaViolation (ask the user to rephrase/retry)
"""


class NegotiationError(Exception):
    kind = "negotiation_error"
    category = "retry"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {
            "kind": self.kind,
            "category": self.category,
            "message": self.message,
        }


class InputError(NegotiationError):
    kind = "input_error"
    category = "fix_request"


class CredentialError(NegotiationError):
    kind = "credential_error"
    category = "misconfigured"


class NotFoundError(NegotiationError):
    kind = "not_found"
    category = "fix_request"


class ServiceError(NegotiationError):
    kind = "service_error"

    def __init__(self, message: str, diagnostic: str | None = None):
        super().__init__(message)
        self.diagnostic = diagnostic

    def to_payload(self) -> dict:
        out = super().to_payload()
        if self.diagnostic:
            out["diagnostic"] = self.diagnostic
        return out


class ParseError(NegotiationError):
    kind = "parse_error"


class SchemaViolation(NegotiationError):
    kind = "schema_violation"

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field

    def to_payload(self) -> dict:
        out = super().to_payload()
        out["field"] = self.field
        return out
