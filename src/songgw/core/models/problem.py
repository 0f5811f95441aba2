from typing import Optional

from pydantic import BaseModel, Field


class ProblemDetails(BaseModel):
    """RFC 7807 style error body returned by every failing gateway route.

    Status polls never produce one of these; they always answer 200 with a
    status payload. Problems are reserved for malformed requests, unknown
    records on the raw record route and unexpected crashes.
    """

    type: str = "about:blank"
    title: str
    status: int = Field(ge=400, le=599)
    detail: str
    instance: Optional[str] = None
    requestId: Optional[str] = None

    def for_request(self, request_id: Optional[str]) -> "ProblemDetails":
        if not request_id or request_id == "-":
            return self
        return self.model_copy(update={"requestId": request_id})
