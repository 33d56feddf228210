"""
License error hierarchy.

Every error a license operation can end in is a ``LicenseError`` subclass
carrying the HTTP status and a stable machine-readable ``code``; the Flask
error handler registered in ``create_app`` renders them as JSON.
"""


class LicenseError(Exception):
    """Base class for recoverable license errors."""

    status_code = 400
    code = 'license_error'
    default_message = 'License error'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        payload = {'success': False, 'error': self.message, 'code': self.code}
        if self.details:
            payload.update(self.details)
        return payload


class MalformedKey(LicenseError):
    code = 'malformed_key'
    default_message = 'Invalid license key format'


class ChecksumMismatch(LicenseError):
    code = 'checksum_mismatch'
    default_message = 'License key checksum mismatch'


class LicenseNotFound(LicenseError):
    status_code = 404
    code = 'not_found'
    default_message = 'License key not found'


class ActivationNotFound(LicenseError):
    status_code = 404
    code = 'activation_not_found'
    default_message = 'Activation not found or inactive'


class TemplateNotFound(LicenseError):
    status_code = 404
    code = 'template_not_found'
    default_message = 'Template not found'


class LicenseInactive(LicenseError):
    status_code = 403
    code = 'license_inactive'
    default_message = 'License is not active'


class LicenseExpired(LicenseError):
    status_code = 403
    code = 'expired'
    default_message = 'License has expired'


class ActivationLimitReached(LicenseError):
    status_code = 403
    code = 'activation_limit_reached'
    default_message = 'Maximum number of activations reached'


class HardwareBindingFailed(LicenseError):
    status_code = 403
    code = 'hardware_binding_failed'
    default_message = 'Hardware binding validation failed'


class HardwareBindingLimit(LicenseError):
    code = 'hardware_binding_limit'
    default_message = 'Maximum hardware binding limit reached'


class ClientEmailMismatch(LicenseError):
    status_code = 403
    code = 'client_email_mismatch'
    default_message = 'Client email does not match license record'


class LicenseKeyMismatch(LicenseError):
    status_code = 403
    code = 'license_key_mismatch'
    default_message = 'License key mismatch'


class SystemMismatch(LicenseError):
    status_code = 403
    code = 'system_mismatch'
    default_message = 'System configuration changed. Please reactivate your license.'


class DuplicateKeyGeneration(LicenseError):
    status_code = 500
    code = 'duplicate_key_generation'
    default_message = 'Could not generate a unique license key'


class PersistenceError(LicenseError):
    """Storage failure. Rendered with a generic message, details are only logged."""

    status_code = 500
    code = 'persistence_error'
    default_message = 'Internal storage error'

    def to_dict(self):
        return {'success': False, 'error': 'Internal server error', 'code': self.code}
