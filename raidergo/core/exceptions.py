class PaymentError(Exception):
    """Base class for failures in the purchase verification pipeline"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class ConfigurationError(PaymentError):
    """A provider secret or merchant id is missing"""
    status_code = 500

class SignatureMismatchError(PaymentError):
    """Payload digest is missing or does not match the recomputed one"""
    status_code = 400

class ProviderAuthError(PaymentError):
    """The provider refused our client credentials"""
    status_code = 502

class PaymentNotCompletedError(PaymentError):
    """The order exists but is not in a paid state"""
    status_code = 400

class AuthenticityError(PaymentError):
    """The correlation token does not belong to this buyer/course"""
    status_code = 400

class ProviderUnavailableError(PaymentError):
    """Network failure or timeout talking to the provider; safe to retry"""
    status_code = 503

class BuyerMismatchError(AuthenticityError):
    """The caller's session token belongs to someone else, or does not verify"""
    status_code = 403
