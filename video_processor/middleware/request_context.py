from dataclasses import dataclass
from time import perf_counter
from uuid import uuid4

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class RequestContext:
    request_id: str
    start_time: float

    def elapsed_ms(self) -> int:
        return int((perf_counter() - self.start_time) * 1000)


def create_request_context(request_id: str | None = None) -> RequestContext:
    return RequestContext(
        request_id=request_id or str(uuid4()),
        start_time=perf_counter(),
    )


def get_request_context(request: Request) -> RequestContext:
    """Context attached by the app middleware; created on demand otherwise."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = create_request_context(request.headers.get(REQUEST_ID_HEADER))
        request.state.context = context
    return context
