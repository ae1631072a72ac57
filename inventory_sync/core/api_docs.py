from inventory_sync.schemas.common import ErrorOut

# status -> (error code, example message); shared by the OpenAPI docs and the error handlers
ERROR_CODES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Bad request"),
    401: ("unauthorized", "Missing or invalid credentials"),
    403: ("forbidden", "Insufficient role for this action"),
    404: ("not_found", "Resource not found"),
    409: ("conflict", "Illegal state transition"),
    422: ("validation_error", "Validation failed"),
    500: ("internal_error", "Internal server error"),
    502: ("channel_error", "Channel call failed"),
    503: ("ledger_unavailable", "Ledger unavailable, retry later"),
}


def error_code_for(status_code: int) -> str:
    return ERROR_CODES.get(status_code, ("http_error", ""))[0]


def error_responses(*status_codes: int, path: str = "/inventory/items") -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = ERROR_CODES.get(status_code, ("http_error", "HTTP error"))
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
