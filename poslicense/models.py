from poslicense import db
from dataclasses import dataclass, field
from sqlalchemy.types import TypeDecorator, Text
import datetime
import json
import logging

logger = logging.getLogger(__name__)

LICENSE_TYPES = ('lifetime', 'monthly', 'yearly', 'trial')
LICENSE_STATUSES = ('active', 'suspended', 'cancelled', 'expired')


def _iso(value):
    return value.isoformat() + 'Z' if value else None


@dataclass(frozen=True)
class HardwareBinding:
    """Which hardware IDs and domains may use a license.

    ``malformed`` marks a stored value that could not be parsed; it keeps the
    raw text so a later save does not overwrite it, and it never passes a
    binding check.
    """
    allowed_hardware_ids: tuple = ()
    allowed_domains: tuple = ()
    strict_mode: bool = False
    max_hardware_bindings: int = 1
    malformed: bool = False
    raw: str = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data, enforce_limit=True):
        """Build from the camelCase JSON shape used by the API and storage.

        Raises ValueError if the shape is wrong, or if there are more hardware
        IDs than maxHardwareBindings (unless enforce_limit is False, as for
        rows already stored).
        """
        if not isinstance(data, dict):
            raise ValueError('hardwareBinding must be an object')

        hardware_ids = data.get('allowedHardwareIds') or []
        domains = data.get('allowedDomains') or []
        if not isinstance(hardware_ids, list) or not all(isinstance(h, str) for h in hardware_ids):
            raise ValueError('allowedHardwareIds must be a list of strings')
        if not isinstance(domains, list) or not all(isinstance(d, str) for d in domains):
            raise ValueError('allowedDomains must be a list of strings')

        strict_mode = data.get('strictMode', False)
        if not isinstance(strict_mode, bool):
            raise ValueError('strictMode must be a boolean')

        max_bindings = data.get('maxHardwareBindings', 1)
        if isinstance(max_bindings, bool) or not isinstance(max_bindings, int) or max_bindings < 1:
            raise ValueError('maxHardwareBindings must be a positive integer')
        if enforce_limit and len(hardware_ids) > max_bindings:
            raise ValueError(f'At most {max_bindings} hardware ID(s) may be bound')

        return cls(
            allowed_hardware_ids=tuple(hardware_ids),
            allowed_domains=tuple(domains),
            strict_mode=strict_mode,
            max_hardware_bindings=max_bindings,
        )

    @classmethod
    def invalid(cls, raw):
        return cls(strict_mode=True, malformed=True, raw=raw)

    def to_dict(self):
        if self.malformed:
            return None
        return {
            'allowedHardwareIds': list(self.allowed_hardware_ids),
            'allowedDomains': list(self.allowed_domains),
            'strictMode': self.strict_mode,
            'maxHardwareBindings': self.max_hardware_bindings,
        }


class HardwareBindingType(TypeDecorator):
    """Stores a HardwareBinding as JSON text."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, dict):
            value = HardwareBinding.from_dict(value)
        if value.malformed:
            return value.raw
        return json.dumps(value.to_dict(), separators=(',', ':'))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return HardwareBinding.from_dict(json.loads(value), enforce_limit=False)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            logger.warning(f"Stored hardware binding is invalid: {e}")
            return HardwareBinding.invalid(value)


class DomainListType(TypeDecorator):
    """Stores a list of domain patterns as JSON text."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(list(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            domains = json.loads(value)
        except ValueError:
            logger.warning("Stored allowed domains are not valid JSON, ignoring")
            return []
        if not isinstance(domains, list):
            return []
        return [d for d in domains if isinstance(d, str)]


class License(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    license_key = db.Column(db.String(32), unique=True, nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, default='lifetime')
    status = db.Column(db.String(20), nullable=False, default='active', index=True)  # 'active', 'suspended', 'cancelled', 'expired'

    client_name = db.Column(db.String(200), nullable=False)
    client_email = db.Column(db.String(120), nullable=False, index=True)

    max_users = db.Column(db.Integer, nullable=False, default=1)
    max_stores = db.Column(db.Integer, nullable=False, default=1)
    max_activations = db.Column(db.Integer, nullable=False, default=3)
    # Cumulative: deactivation does not give a slot back.
    activation_count = db.Column(db.Integer, nullable=False, default=0)

    issued_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=True)
    last_activated_at = db.Column(db.DateTime, nullable=True)
    last_verified_at = db.Column(db.DateTime, nullable=True)

    allowed_domains = db.Column(DomainListType, nullable=True)
    hardware_binding = db.Column(HardwareBindingType, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), default='system')
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow,
                           onupdate=datetime.datetime.utcnow)

    activations = db.relationship('LicenseActivation', back_populates='license', lazy=True,
                                  order_by='LicenseActivation.activated_at.desc()')
    payments = db.relationship('LicensePayment', back_populates='license', lazy=True,
                               order_by='LicensePayment.created_at.desc()')

    def __str__(self):
        return f"{self.license_key} ({self.type}, {self.status}) for {self.client_name}"

    @property
    def is_active(self):
        return self.status == 'active'

    def is_expired(self, now=None):
        now = now or datetime.datetime.utcnow()
        return self.expires_at is not None and self.expires_at < now

    @property
    def active_activations(self):
        return [a for a in self.activations if a.is_active]

    def to_dict(self):
        return {
            'id': self.id,
            'licenseKey': self.license_key,
            'type': self.type,
            'status': self.status,
            'clientName': self.client_name,
            'clientEmail': self.client_email,
            'maxUsers': self.max_users,
            'maxStores': self.max_stores,
            'maxActivations': self.max_activations,
            'activationCount': self.activation_count,
            'activeActivations': len(self.active_activations),
            'issuedAt': _iso(self.issued_at),
            'expiresAt': _iso(self.expires_at),
            'lastActivatedAt': _iso(self.last_activated_at),
            'lastVerifiedAt': _iso(self.last_verified_at),
            'allowedDomains': self.allowed_domains,
            'hardwareBinding': self.hardware_binding.to_dict() if self.hardware_binding else None,
            'notes': self.notes,
            'createdAt': _iso(self.created_at),
        }


class LicenseActivation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    activation_key = db.Column(db.String(40), unique=True, nullable=False, index=True)
    license_id = db.Column(db.Integer, db.ForeignKey('license.id'), nullable=False, index=True)
    domain = db.Column(db.String(255))
    hardware_id = db.Column(db.String(255), index=True)
    ip_address = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    activated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, index=True)
    last_verified_at = db.Column(db.DateTime, nullable=True)
    deactivated_at = db.Column(db.DateTime, nullable=True)
    deactivation_reason = db.Column(db.String(255), nullable=True)

    license = db.relationship('License', back_populates='activations')

    def __str__(self):
        state = 'active' if self.is_active else 'inactive'
        return f"Activation {self.activation_key} ({state})"

    def to_dict(self):
        return {
            'id': self.id,
            'activationKey': self.activation_key,
            'licenseId': self.license_id,
            'domain': self.domain,
            'hardwareId': self.hardware_id,
            'ipAddress': self.ip_address,
            'isActive': self.is_active,
            'activatedAt': _iso(self.activated_at),
            'lastVerifiedAt': _iso(self.last_verified_at),
            'deactivatedAt': _iso(self.deactivated_at),
            'deactivationReason': self.deactivation_reason,
        }


class LicensePayment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    license_id = db.Column(db.Integer, db.ForeignKey('license.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    status = db.Column(db.String(20), nullable=False, default='pending')  # 'pending', 'completed', 'failed', 'refunded'
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)

    license = db.relationship('License', back_populates='payments')

    def to_dict(self):
        return {
            'id': self.id,
            'licenseId': self.license_id,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'status': self.status,
            'createdAt': _iso(self.created_at),
        }
