from fishstock.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("insufficient_inventory", "Not enough stock for 25 kg"),
    401: ("unauthorized", "Missing actor identity headers"),
    403: ("forbidden", "Insufficient permission for this action"),
    404: ("not_found", "Resource not found"),
    409: ("not_pending", "Request could not be completed"),
    422: ("validation_error", "Validation failed"),
    500: ("internal_error", "Internal server error"),
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
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
                            "path": "/stock-movements/movement-id/approve",
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
