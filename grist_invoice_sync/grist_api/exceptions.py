# grist_invoice_sync/grist_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class GristAPIError(Exception):
    """Base exception for grist_api errors."""
    pass

class ValidationError(GristAPIError):
    """Raised for malformed caller input (missing key columns, bad filters, bad ids)."""
    pass

class NotFoundError(GristAPIError):
    """Raised when an expected source or destination row is absent."""
    pass

class ConfigError(GristAPIError):
    """Raised when required configuration (e.g. the API key) is missing or invalid."""
    pass

class RemoteError(GristAPIError):
    """Raised for non-2xx responses or malformed payloads from the Grist service."""
    def __init__(self, message: str, status_code: int = None, response_data: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

class AuthenticationError(RemoteError):
    """Raised for authentication failures."""
    pass

class APIConnectionError(RemoteError):
    """Raised for network or connection issues."""
    pass

#
# End of grist_invoice_sync/grist_api/exceptions.py
########################################################################################################################
