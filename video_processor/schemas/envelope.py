from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every error response.

    ``error`` is the machine-readable code, ``details`` the human-readable
    message.
    """

    error: str
    details: str
    request_id: str | None = None
    retryable: bool = False
    suggested_fix: str | None = None
    upstream_status: int | None = None
    upstream_body: str | None = None
