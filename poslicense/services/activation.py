"""
License activation workflow.

Binds a license to a system (hardware fingerprint and/or domain), records the
activation and keeps ``License.activation_count`` within ``max_activations``
even under concurrent requests.
"""

from datetime import datetime
from typing import Optional
import logging

from poslicense.errors import (
    ActivationLimitReached, ActivationNotFound, ChecksumMismatch, ClientEmailMismatch,
    DuplicateKeyGeneration, HardwareBindingFailed, LicenseExpired, LicenseInactive,
    LicenseKeyMismatch, LicenseNotFound, MalformedKey, SystemMismatch,
)
from poslicense.models import LICENSE_STATUSES, LicenseActivation
from poslicense.services.binding import SystemInfo, check_binding, domain_matches
from poslicense.services.key_codec import generate_activation_key
from poslicense.services.key_validator import KeyValidator
from poslicense.utils.audit_log import (
    log_activation_rejected, log_license_activated, log_license_deactivated,
    log_status_changed, log_system_mismatch,
)

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = ('suspended', 'cancelled')
REACTIVATION_REASON = 'New activation on same hardware'
SYSTEM_MISMATCH_REASON = 'Security violation - system mismatch'


class ActivationService:
    """Activates, deactivates and re-checks license activations."""

    def __init__(self, repository, max_key_attempts: int = 100):
        self.repository = repository
        self.max_key_attempts = max_key_attempts

    def activate(self, license_key: str, system_info: Optional[SystemInfo] = None,
                 client_email: Optional[str] = None, now: Optional[datetime] = None) -> LicenseActivation:
        """
        Bind a license to a system.

        Args:
            license_key: License key
            system_info: Requesting system
            client_email: When given, must match the license owner
            now: Reference time (UTC, naive)

        Returns:
            The new LicenseActivation

        Raises:
            LicenseNotFound, MalformedKey, ChecksumMismatch, LicenseInactive,
            LicenseExpired, ClientEmailMismatch, ActivationLimitReached,
            HardwareBindingFailed, PersistenceError
        """
        now = now or datetime.utcnow()
        system_info = system_info or SystemInfo()

        license = self.repository.find_by_key(license_key)
        if license is None:
            log_activation_rejected(license_key, 'License key not found')
            raise LicenseNotFound()

        try:
            self._check_key(license_key)
            self._check_state(license, now)

            if client_email and license.client_email.lower() != client_email.strip().lower():
                raise ClientEmailMismatch()

            if license.activation_count >= license.max_activations:
                raise ActivationLimitReached(activationCount=license.activation_count,
                                             maxActivations=license.max_activations)

            self._check_binding(license, system_info)
        except (MalformedKey, ChecksumMismatch, LicenseInactive, LicenseExpired,
                ClientEmailMismatch, ActivationLimitReached, HardwareBindingFailed) as e:
            log_activation_rejected(license_key, e.message)
            raise

        if system_info.hardware_id:
            self.repository.deactivate_activations(license.id, REACTIVATION_REASON, now,
                                                   hardware_id=system_info.hardware_id)

        if not self.repository.try_increment_activation_count(license.id, now):
            # Another request took the last slot after our read.
            self.repository.rollback()
            log_activation_rejected(license_key, ActivationLimitReached.default_message)
            raise ActivationLimitReached(activationCount=license.activation_count,
                                         maxActivations=license.max_activations)

        activation = LicenseActivation(
            activation_key=self._new_activation_key(),
            license_id=license.id,
            domain=system_info.domain,
            hardware_id=system_info.hardware_id,
            ip_address=system_info.ip_address or 'unknown',
            is_active=True,
            activated_at=now,
            last_verified_at=now,
        )
        self.repository.add_activation(activation)
        self.repository.commit()

        logger.info(f"ActivationService: Activated license {license.id} "
                    f"({license.activation_count}/{license.max_activations})")
        log_license_activated(license, activation)
        return activation

    def deactivate(self, activation_key: str, reason: str = 'Manual deactivation',
                   license_key: Optional[str] = None, now: Optional[datetime] = None) -> LicenseActivation:
        """
        Soft-delete an activation.

        activation_count is cumulative and is not decremented; use
        ``repository.count_active_activations`` for live occupancy.
        """
        now = now or datetime.utcnow()
        activation = self.repository.find_activation_by_key(activation_key)
        if activation is None:
            raise ActivationNotFound('Activation not found')
        if license_key is not None and activation.license.license_key != license_key:
            raise LicenseKeyMismatch()

        if activation.is_active:
            activation.is_active = False
            activation.deactivated_at = now
            activation.deactivation_reason = reason
            self.repository.commit()
            log_license_deactivated(activation, reason)
        return activation

    def check(self, activation_key: str, license_key: str, system_info: Optional[SystemInfo] = None,
              now: Optional[datetime] = None) -> LicenseActivation:
        """
        Re-validate an existing activation (periodic client heartbeat).

        A hardware or domain change against the recorded activation
        deactivates it.

        Raises:
            ActivationNotFound, LicenseKeyMismatch, LicenseInactive,
            LicenseExpired, SystemMismatch
        """
        now = now or datetime.utcnow()
        activation = self.repository.find_activation_by_key(activation_key)
        if activation is None or not activation.is_active:
            raise ActivationNotFound()

        license = activation.license
        if license.license_key != license_key:
            raise LicenseKeyMismatch()

        self._check_state(license, now)

        if system_info is not None:
            hardware_changed = bool(system_info.hardware_id and activation.hardware_id
                                    and system_info.hardware_id != activation.hardware_id)
            domain_changed = bool(system_info.domain and activation.domain
                                  and system_info.domain != activation.domain)
            if hardware_changed or domain_changed:
                logger.warning(f"ActivationService: System mismatch for activation {activation.id} "
                               f"(hardware_changed={hardware_changed}, domain_changed={domain_changed})")
                activation.is_active = False
                activation.deactivated_at = now
                activation.deactivation_reason = SYSTEM_MISMATCH_REASON
                self.repository.commit()
                log_system_mismatch(activation, system_info.to_dict())
                raise SystemMismatch()

        license.last_verified_at = now
        activation.last_verified_at = now
        self.repository.commit()
        return activation

    def change_status(self, license, status: str, now: Optional[datetime] = None):
        """
        Set a license status.

        Suspending or cancelling a license deactivates all of its active
        activations in the same transaction.

        Raises:
            ValueError: unknown status
        """
        if status not in LICENSE_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        now = now or datetime.utcnow()
        old_status = license.status

        if status in INACTIVE_STATUSES:
            count = self.repository.deactivate_activations(license.id, f"License {status}", now)
            logger.info(f"ActivationService: Deactivated {count} activation(s) of license {license.id}")

        self.repository.update(license, status=status)
        if old_status != status:
            log_status_changed(license, old_status, status)
        return license

    # ---------------------------
    # Steps
    # ---------------------------
    @staticmethod
    def _check_key(license_key: str):
        validation = KeyValidator.validate(license_key)
        if not KeyValidator.is_well_formed(license_key):
            raise MalformedKey()
        if not validation.is_valid or not validation.checksum_valid:
            raise ChecksumMismatch('; '.join(validation.issues) or None)

    def _check_state(self, license, now):
        if license.status in INACTIVE_STATUSES:
            raise LicenseInactive(f'License is {license.status}')
        if license.status == 'expired' or license.is_expired(now):
            self.expire(license)
            raise LicenseExpired()

    def expire(self, license):
        """Persist the lazy active -> expired transition."""
        if license.status != 'expired':
            old_status = license.status
            self.repository.update(license, status='expired')
            logger.info(f"ActivationService: License {license.id} marked expired")
            log_status_changed(license, old_status, 'expired')

    @staticmethod
    def _check_binding(license, system_info: SystemInfo):
        if license.allowed_domains and system_info.domain \
                and not domain_matches(system_info.domain, license.allowed_domains):
            raise HardwareBindingFailed('Domain not allowed for this license')
        if not check_binding(license.hardware_binding, system_info):
            raise HardwareBindingFailed()

    def _new_activation_key(self) -> str:
        for _ in range(self.max_key_attempts):
            key = generate_activation_key()
            if not self.repository.activation_key_exists(key):
                return key
        raise DuplicateKeyGeneration('Could not generate a unique activation key')
