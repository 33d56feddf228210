"""
License services.

Key generation and validation, risk scoring, hardware/domain binding,
activation, verification, monitoring and issuing.
"""

from poslicense.services.key_validator import KeyValidator, KeyValidation
from poslicense.services.binding import SystemInfo, check_binding, domain_matches
from poslicense.services.risk import assess_risk, calculate_verification_score
from poslicense.services.repository import LicenseRepository
from poslicense.services.activation import ActivationService
from poslicense.services.verification import VerificationPipeline, VerificationResult
from poslicense.services.monitoring import MonitoringService
from poslicense.services.issuing import LicenseIssuer

__all__ = [
    'KeyValidator',
    'KeyValidation',
    'SystemInfo',
    'check_binding',
    'domain_matches',
    'assess_risk',
    'calculate_verification_score',
    'LicenseRepository',
    'ActivationService',
    'VerificationPipeline',
    'VerificationResult',
    'MonitoringService',
    'LicenseIssuer',
]
