"""
License issuing: new licenses with unique keys, singly or from a template.
"""

import calendar
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from poslicense.errors import TemplateNotFound
from poslicense.models import LICENSE_TYPES, HardwareBinding, License
from poslicense.services.key_codec import generate_unique_key
from poslicense.services.key_validator import KeyValidator
from poslicense.services.risk import assess_risk
from poslicense.services.templates import get_template
from poslicense.utils.audit_log import log_license_created

logger = logging.getLogger(__name__)

TRIAL_DAYS = 30


def add_months(value: datetime, months: int) -> datetime:
    """Same day `months` later, clamped to the last day of a shorter month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def expiry_for(license_type: str, issued_at: datetime) -> Optional[datetime]:
    """
    Expiry date of a new license.

    monthly: +1 month, yearly: +1 year, trial: +30 days, lifetime: never.
    """
    if license_type == 'monthly':
        return add_months(issued_at, 1)
    if license_type == 'yearly':
        return add_months(issued_at, 12)
    if license_type == 'trial':
        return issued_at + timedelta(days=TRIAL_DAYS)
    return None


class LicenseIssuer:

    def __init__(self, repository, max_key_attempts: int = 100, bulk_max: int = 50):
        self.repository = repository
        self.max_key_attempts = max_key_attempts
        self.bulk_max = bulk_max

    def create(self, license_type: str, client_name: str, client_email: str, max_users: int = 1,
               max_stores: int = 1, max_activations: int = 3, allowed_domains: Optional[List[str]] = None,
               hardware_binding: Optional[dict] = None, notes: Optional[str] = None,
               created_by: str = 'system', now: Optional[datetime] = None) -> License:
        """
        Issue a new license with a fresh checksum-bearing key.

        Args:
            license_type: lifetime | monthly | yearly | trial
            hardware_binding: camelCase binding object, validated here

        Returns:
            The persisted License

        Raises:
            ValueError: invalid type or binding
            DuplicateKeyGeneration: no unique key within max_key_attempts
        """
        if license_type not in LICENSE_TYPES:
            raise ValueError(f"Invalid license type: {license_type}")
        now = now or datetime.utcnow()
        binding = HardwareBinding.from_dict(hardware_binding) if hardware_binding is not None else None

        license_key = generate_unique_key(self.repository.key_exists, self.max_key_attempts)
        license = License(
            license_key=license_key,
            type=license_type,
            status='active',
            client_name=client_name,
            client_email=client_email,
            max_users=max_users,
            max_stores=max_stores,
            max_activations=max_activations,
            activation_count=0,
            issued_at=now,
            expires_at=expiry_for(license_type, now),
            last_verified_at=now,
            allowed_domains=[d.strip().lower() for d in allowed_domains] if allowed_domains else None,
            hardware_binding=binding,
            notes=notes,
            created_by=created_by,
            created_at=now,
        )
        self.repository.create(license)

        logger.info(f"LicenseIssuer: Issued {license_type} license {license.id} to {client_email}")
        log_license_created(license)
        return license

    def describe(self, license, now: Optional[datetime] = None) -> dict:
        """Creation response body: license, key, key validation and risk."""
        return {
            'license': license.to_dict(),
            'licenseKey': license.license_key,
            'validation': KeyValidator.validate(license.license_key).to_dict(),
            'riskAssessment': assess_risk(license, now).to_dict(),
        }

    def generate_from_template(self, template_id: str, count: int = 1, client_name: Optional[str] = None,
                               client_email: Optional[str] = None) -> List[License]:
        """
        Issue `count` licenses with the limits of a catalog template.

        Raises:
            TemplateNotFound: unknown template
            ValueError: count outside 1..bulk_max
        """
        template = get_template(template_id)
        if template is None:
            raise TemplateNotFound()
        if count < 1 or count > self.bulk_max:
            raise ValueError(f"Count must be between 1 and {self.bulk_max}")

        licenses = []
        for i in range(1, count + 1):
            licenses.append(self.create(
                template.type,
                client_name or f'{template.name} License {i}',
                client_email or f'generated{i}@{template.email_domain}',
                max_users=template.max_users,
                max_stores=template.max_stores,
                max_activations=template.max_activations,
                notes=f'Generated from template: {template.name}',
            ))
        logger.info(f"LicenseIssuer: Generated {len(licenses)} license(s) from template {template.name}")
        return licenses
