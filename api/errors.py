"""
Domain errors raised by the services layer.

The API layer maps them to HTTP responses in main.py:
  ValidationError → 422
  NotFound        → 404
  QuotaExceeded   → 409
  ContractorInUse → 409
"""


class DirectoryError(Exception):
    """Base class for business-rule errors returned to the caller."""

    status_code = 400
    code = "directory_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.code}


class ValidationError(DirectoryError):
    """Malformed input: missing field, bad email, unknown status, bad dates."""

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFound(DirectoryError):
    """Referenced contractor, lead, plan or subscription does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)


class ContractorInUse(DirectoryError):
    """Contractor still owns leads or subscription history and cannot be deleted."""

    status_code = 409
    code = "contractor_in_use"

    def __init__(self, contractor_id: int, lead_count: int, subscription_count: int):
        self.contractor_id = contractor_id
        self.lead_count = lead_count
        self.subscription_count = subscription_count
        super().__init__(
            f"Contractor {contractor_id} has {lead_count} lead(s) and "
            f"{subscription_count} subscription(s) and cannot be deleted"
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({
            "contractor_id": self.contractor_id,
            "lead_count": self.lead_count,
            "subscription_count": self.subscription_count,
        })
        return body


class QuotaExceeded(DirectoryError):
    """Contractor has used up the monthly lead quota of its plan."""

    status_code = 409
    code = "quota_exceeded"

    def __init__(self, contractor_id: int, leads_used: int, monthly_lead_quota: int):
        self.contractor_id = contractor_id
        self.leads_used = leads_used
        self.monthly_lead_quota = monthly_lead_quota
        super().__init__(
            f"Contractor {contractor_id} has reached its monthly lead limit "
            f"({leads_used}/{monthly_lead_quota})"
        )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({
            "contractor_id": self.contractor_id,
            "leads_used": self.leads_used,
            "monthly_lead_quota": self.monthly_lead_quota,
        })
        return body
