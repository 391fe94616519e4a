"""Error taxonomy for the scoring engine and its JSON rendering."""

from typing import Any, Dict, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException


class ScoringError(Exception):
    code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {'code': self.code, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ScoringError):
    """Malformed or out-of-range input. Nothing was written."""
    code = 'VALIDATION_ERROR'
    status_code = 400


class AntiCheatRejection(ScoringError):
    """Plausible input flagged as suspicious. Nothing was written."""
    code = 'SCORE_REJECTED'
    status_code = 422

    def __init__(self, reason: str, message: str = 'Score flagged for review'):
        self.reason = reason
        super().__init__(message, details={'reason': reason})


class NotFoundError(ScoringError):
    code = 'NOT_FOUND'
    status_code = 404


class PersistenceError(ScoringError):
    """The store failed mid-transaction; the whole unit was rolled back and may be retried."""
    code = 'PERSISTENCE_ERROR'
    status_code = 503


def _error_response(status_code: int, body: Dict[str, Any]):
    return jsonify({'success': False, 'error': body}), status_code


def register_error_handlers(app) -> None:
    @app.errorhandler(ScoringError)
    def handle_scoring_error(exc: ScoringError):
        return _error_response(exc.status_code, exc.to_dict())

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = 'NOT_FOUND' if exc.code == 404 else 'HTTP_ERROR'
        return _error_response(exc.code or 500, {'code': code, 'message': exc.description})

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception(f"[unhandled] {type(exc).__name__}")
        return _error_response(500, {'code': 'INTERNAL_ERROR', 'message': 'An unexpected error occurred'})
