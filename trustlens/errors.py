# trustlens/errors.py
from typing import Optional


class TrustLensError(Exception):
    """Base for every failure the API reports as ``{error, message?}``."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, error: Optional[str] = None, message: Optional[str] = None):
        if error is not None:
            self.error = error
        self.message = message
        super().__init__(message or self.error)

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


class ValidationError(TrustLensError):
    """Missing, oversized or wrongly typed upload."""

    status_code = 400
    error = "Invalid upload"


class ModelUnavailable(TrustLensError, RuntimeError):
    error = "Model not loaded"


class DecodeError(TrustLensError, ValueError):
    error = "Prediction failed"


class InferenceTimeout(TrustLensError):
    error = "Prediction timed out"


class InferenceError(TrustLensError):
    error = "Prediction failed"
