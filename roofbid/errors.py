"""
Error types shared by the estimation engine, the store and the API
Each error carries the status classification the API layer reports
"""

from typing import Dict, Optional


class RoofBidError(Exception):
    """Base error with a JSON-friendly payload"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict:
        payload = {'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(RoofBidError):
    """Malformed input to a public function; never retried"""

    status_code = 400


class FormulaError(RoofBidError):
    """A quantity formula could not be parsed or evaluated"""

    status_code = 400

    def __init__(self, message: str, formula: Optional[str] = None, position: Optional[int] = None):
        details = {}
        if formula is not None:
            details['formula'] = formula
        if position is not None:
            details['position'] = position
        super().__init__(message, details or None)
        self.formula = formula
        self.position = position


class ConflictError(RoofBidError):
    """The record changed underneath the caller (e.g. estimate already responded to)"""

    status_code = 409


class NotFoundError(RoofBidError):
    """A referenced macro, line item, estimate, job or template does not exist"""

    status_code = 404
