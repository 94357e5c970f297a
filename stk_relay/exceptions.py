class RelayError(Exception):
    """Base class for every error raised by the payment relay."""


class InvalidInput(RelayError):
    """Client fault. Raised before any call to the gateway."""


class InvalidTenant(InvalidInput):
    def __init__(self, tenant_id):
        super().__init__(f"Unknown project ID: {tenant_id}")
        self.tenant_id = tenant_id


class InvalidAmount(InvalidInput):
    pass


class InvalidPhoneFormat(InvalidInput):
    pass


class UpstreamError(RelayError):
    """
    The gateway rejected a call.

    Carries as much of the vendor diagnostic as was available: the HTTP
    status, Daraja's `errorCode`/`errorMessage` pair, and the raw body.
    """

    def __init__(self, message, status_code=None, error_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.error_message = message
        self.body = body

    @classmethod
    def from_response(cls, response, fallback):
        try:
            body = response.json()
        except ValueError:
            body = response.text or None

        error_code = None
        message = fallback
        if isinstance(body, dict):
            error_code = body.get("errorCode")
            message = body.get("errorMessage") or fallback
        return cls(message, status_code=response.status_code, error_code=error_code, body=body)

    @property
    def detail(self):
        """Most specific diagnostic available: errorMessage, raw body, then our message."""
        if isinstance(self.body, dict) and self.body.get("errorMessage"):
            return self.body["errorMessage"]
        return self.body or self.error_message


class UpstreamAuthError(UpstreamError):
    pass


class UpstreamRequestError(UpstreamError):
    pass


class MalformedCallback(RelayError):
    pass


class PersistenceError(RelayError):
    pass
