"""Custom exceptions for the Cotizador application."""

class CotizadorError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv

class BusinessLogicError(CotizadorError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class VersionReasonRequired(BusinessLogicError):
    """Raised when saving real item changes without a version reason."""
    def __init__(self, message="Los cambios requieren una nueva versión: indique el motivo."):
        super().__init__(message, payload={'requires_new_version': True})

class MergeAnalysisError(BusinessLogicError):
    """Raised when a combine request cannot be resolved into a new version."""

class NotFoundError(CotizadorError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class LockContentionError(CotizadorError):
    """Raised when the quote lock is held by another user."""
    def __init__(self, locked_by=None, expires_at=None, message=None):
        holder = (locked_by or {}).get('name') or 'otro usuario'
        message = message or f"La cotización está siendo editada por {holder}."
        super().__init__(message, 409, {'locked_by': locked_by, 'expires_at': expires_at})
        self.locked_by = locked_by
        self.expires_at = expires_at

class LockRequiredError(CotizadorError):
    """Raised when a mutation is attempted without holding the quote lock."""
    def __init__(self, message="Debe adquirir el bloqueo de la cotización antes de editarla."):
        super().__init__(message, 423)

class ErpRejectedError(CotizadorError):
    """Raised when Tango rejects an order; the message is the ERP's own text."""
    def __init__(self, message, payload=None):
        super().__init__(message, 502, payload)

class BackendError(CotizadorError):
    """Raised by the API client for an unexpected backend response."""

class BackendUnavailableError(BackendError):
    """Raised by the API client when the backend cannot be reached."""
    def __init__(self, message="No se pudo conectar con el servidor"):
        super().__init__(message, 503)
