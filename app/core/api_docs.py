from app.core.observability import ERROR_CODES
from app.schemas.common import ErrorOut


# Messages as the handlers and services actually raise them.
_ERROR_MESSAGES: dict[int, str] = {
    400: "uses_count must be between 0 and 1",
    403: "Invalid admin key",
    404: "{resource} not found",
    409: "Coupon code has no uses left",
    422: "At least one field must be provided",
    500: "Internal server error",
}


def error_responses(
    *status_codes: int,
    resource: str = "Resource",
    path: str = "/coupon-codes",
    messages: dict[int, str] | None = None,
) -> dict[int, dict]:
    """OpenAPI ``responses`` entries rendered in the error envelope.

    ``resource`` fills the 404 message, e.g. ``"Sales rule"`` gives
    "Sales rule not found". ``messages`` overrides the example per status.
    """
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code = ERROR_CODES.get(status_code, "http_error")
        message = (messages or {}).get(status_code) or _ERROR_MESSAGES.get(status_code, "HTTP error")
        message = message.format(resource=resource)
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": path,
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
