from typing import Any, Dict, List, Optional

from flask import Response, jsonify, request


class APIResponse:
    """Standardized API response handler"""

    @staticmethod
    def success(data: Any = None, message: str = "Success", status_code: int = 200) -> Response:
        """Standard success response"""
        response_data = {
            'success': True,
            'message': message,
            'data': data
        }
        return jsonify(response_data), status_code

    @staticmethod
    def error(message: str, errors: Optional[Dict] = None, status_code: int = 400,
              headers: Optional[Dict[str, str]] = None) -> Response:
        """Standard error response"""
        response_data = {
            'success': False,
            'message': message,
            'errors': errors or {}
        }
        if headers:
            return jsonify(response_data), status_code, headers
        return jsonify(response_data), status_code

    @staticmethod
    def validation_error(errors: Dict[str, List[str]]) -> Response:
        """Validation error response"""
        return APIResponse.error(
            message="Validation failed",
            errors=errors,
            status_code=422
        )

    @staticmethod
    def not_found(resource: str = "Resource") -> Response:
        """404 error response"""
        return APIResponse.error(
            message=f"{resource} not found",
            status_code=404
        )

    @staticmethod
    def conflict(message: str, errors: Optional[Dict] = None) -> Response:
        """409 error response"""
        return APIResponse.error(message=message, errors=errors, status_code=409)

    @staticmethod
    def service_unavailable(message: str, retry_after: Optional[float] = None) -> Response:
        """503 error response, with Retry-After when the wait is known"""
        headers = None
        if retry_after is not None:
            headers = {'Retry-After': str(max(int(retry_after + 0.999), 1))}
        return APIResponse.error(message=message, status_code=503, headers=headers)

    @staticmethod
    def handle_request_content() -> Dict[str, Any]:
        """Smart request content handling"""
        if request.is_json:
            return request.get_json(silent=True) or {}
        elif request.form:
            return request.form.to_dict()
        else:
            return {}


__all__ = ['APIResponse']
