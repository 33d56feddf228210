"""
Multi-layer license verification.

``VerificationPipeline.verify`` runs every check against a license and folds
the results into a confidence score, a pass/fail decision and a list of
human-readable issues and recommendations. Business failures never raise;
they are reported in the result.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from poslicense.services.binding import SystemInfo, check_binding
from poslicense.services.key_validator import KEY_FORMAT_RE, KeyValidator
from poslicense.services.risk import (
    EXPIRY_WARNING_DAYS, HIGH_USAGE_RATIO, MAX_HARDWARE_BINDINGS, STALE_VERIFICATION_DAYS,
    activation_ratio, assess_risk, calculate_verification_score, days_between,
)
from poslicense.utils.audit_log import log_status_changed, log_verification_failed

logger = logging.getLogger(__name__)

VALID_CONFIDENCE = 70
LOW_RISK_CONFIDENCE = 85
RECENT_ACTIVATION_DAYS = 7
RECENT_ACTIVATION_LIMIT = 3

CHECK_NAMES = ('format', 'checksum', 'expiration', 'activation', 'hardware', 'status')


@dataclass
class VerificationResult:
    is_valid: bool
    confidence: int
    checks: dict
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    risk_level: Optional[str] = None
    risk_factors: List[str] = field(default_factory=list)
    verification_score: Optional[int] = None
    verified_at: Optional[datetime] = None
    license: object = None
    found: bool = True

    @classmethod
    def not_found(cls, now=None):
        return cls(
            is_valid=False,
            confidence=0,
            checks={name: False for name in CHECK_NAMES},
            issues=['License not found'],
            recommendations=['Check the license key and try again',
                             'Contact support if you believe this is an error'],
            risk_level='high',
            verified_at=now or datetime.utcnow(),
            found=False,
        )

    def to_dict(self, include_details=False):
        data = {
            'isValid': self.is_valid,
            'confidence': self.confidence,
            'checks': dict(self.checks),
            'issues': list(self.issues),
            'recommendations': list(self.recommendations),
            'riskLevel': self.risk_level,
            'riskFactors': list(self.risk_factors),
            'verificationScore': self.verification_score,
            'verifiedAt': self.verified_at.isoformat() + 'Z' if self.verified_at else None,
        }
        if not self.found:
            data['error'] = 'License not found'
        if include_details and self.license is not None:
            data['license'] = self.license.to_dict()
        return data


class VerificationPipeline:
    """Runs format, checksum, expiration, activation, binding and status checks."""

    def __init__(self, repository):
        self.repository = repository

    def verify(self, license_key: str, system_info: Optional[SystemInfo] = None,
               now: Optional[datetime] = None) -> VerificationResult:
        """
        Verify a license key.

        Checks are evaluated against the license as loaded. Afterwards
        ``last_verified_at`` is refreshed and a license past its expiry date
        is marked expired.

        Args:
            license_key: License key as supplied by the client
            system_info: Optional requesting system for the binding check
            now: Reference time (UTC, naive)

        Returns:
            VerificationResult
        """
        now = now or datetime.utcnow()
        license = self.repository.find_by_key(license_key)
        if license is None:
            logger.info("VerificationPipeline: License key not found")
            return VerificationResult.not_found(now)

        checks = {name: False for name in CHECK_NAMES}
        issues = []
        recommendations = []
        confidence = 100

        # Format
        checks['format'] = bool(license_key) and bool(KEY_FORMAT_RE.match(license_key))
        if not checks['format']:
            issues.append('Invalid license key format')
            recommendations.append('Check the license key format and try again')
            confidence -= 40

        # Checksum
        if checks['format']:
            bad_segments = KeyValidator.invalid_segments(license_key)
            checks['checksum'] = not bad_segments
            for number in bad_segments:
                issues.append(f'Invalid checksum in segment {number}')
            if bad_segments:
                recommendations.append('License key may be corrupted or tampered with')
                confidence -= 30

        # Expiration
        if license.expires_at:
            checks['expiration'] = license.expires_at > now
            if not checks['expiration']:
                issues.append('License has expired')
                recommendations.append('Contact support to renew your license')
                confidence -= 50
            else:
                days_left = days_between(license.expires_at, now)
                if days_left < EXPIRY_WARNING_DAYS:
                    issues.append(f'License expires in {days_left} days')
                    recommendations.append('Consider renewing your license soon')
                    confidence -= 10
        else:
            checks['expiration'] = True

        # Activation limit
        checks['activation'] = license.activation_count < license.max_activations
        if not checks['activation']:
            issues.append('Maximum activation limit reached')
            recommendations.append('Contact support to increase activation limit')
            confidence -= 40
        else:
            ratio = activation_ratio(license)
            if ratio > HIGH_USAGE_RATIO:
                issues.append(f'High activation usage ({round(ratio * 100)}%)')
                recommendations.append('Monitor activation usage closely')
                confidence -= 15

        # Hardware binding
        binding = license.hardware_binding
        if binding is not None and system_info is not None:
            if binding.malformed:
                checks['hardware'] = False
                issues.append('Invalid hardware binding configuration')
                recommendations.append('Contact support to resolve hardware binding issues')
                confidence -= 20
            else:
                checks['hardware'] = check_binding(binding, system_info)
                if not checks['hardware']:
                    issues.append('Hardware binding validation failed')
                    recommendations.append('License is bound to different hardware or domain')
                    confidence -= 35
        else:
            checks['hardware'] = True

        # Status
        checks['status'] = license.status == 'active'
        if not checks['status']:
            issues.append(f'License status is {license.status}')
            recommendations.append('Contact support to resolve license status issues')
            confidence -= 60

        # Staleness
        if license.last_verified_at and \
                days_between(now, license.last_verified_at) > STALE_VERIFICATION_DAYS:
            issues.append('License not verified recently')
            recommendations.append('Perform regular license verification')
            confidence -= 10

        # Activation bursts
        if license.activation_count > 0:
            since = now - timedelta(days=RECENT_ACTIVATION_DAYS)
            recent = [a for a in license.activations if a.activated_at and a.activated_at >= since]
            if len(recent) > RECENT_ACTIVATION_LIMIT:
                issues.append('High number of recent activations')
                recommendations.append('Monitor for suspicious activation patterns')
                confidence -= 25

        confidence = max(0, confidence)
        is_valid = confidence >= VALID_CONFIDENCE and all(checks.values())

        risk = assess_risk(license, now)
        result = VerificationResult(
            is_valid=is_valid,
            confidence=confidence,
            checks=checks,
            issues=issues,
            recommendations=recommendations,
            risk_level=risk.risk_level,
            risk_factors=risk.factors,
            verification_score=calculate_verification_score(license, now),
            verified_at=now,
            license=license,
        )

        changes = {'last_verified_at': now}
        old_status = license.status
        if license.is_expired(now) and old_status != 'expired':
            changes['status'] = 'expired'
        self.repository.update(license, **changes)

        if 'status' in changes:
            logger.info(f"VerificationPipeline: License {license.id} marked expired")
            log_status_changed(license, old_status, 'expired')
        if not is_valid:
            log_verification_failed(license, issues)
        return result

    @staticmethod
    def build_report(result: VerificationResult, system_info: Optional[SystemInfo] = None) -> dict:
        """Summarize a verification result for support staff."""
        if result.confidence >= LOW_RISK_CONFIDENCE:
            risk_level = 'low'
        elif result.confidence >= VALID_CONFIDENCE:
            risk_level = 'medium'
        else:
            risk_level = 'high'

        if result.is_valid:
            summary = 'License verification successful. All security checks passed.'
        else:
            summary = 'License verification failed. Issues detected that need attention.'
        if risk_level == 'high':
            summary += ' Immediate action required.'
        elif risk_level == 'medium':
            summary += ' Attention recommended.'

        license = result.license
        details = {
            'systemInfo': system_info.to_dict() if system_info else None,
            'validationChecks': dict(result.checks),
            'validationIssues': list(result.issues),
        }
        if license is not None:
            details.update({
                'licenseKey': license.license_key,
                'clientName': license.client_name,
                'clientEmail': license.client_email,
                'licenseType': license.type,
                'status': license.status,
                'activationCount': license.activation_count,
                'maxActivations': license.max_activations,
                'hardwareBinding': license.hardware_binding.to_dict() if license.hardware_binding else None,
            })

        next_steps = []
        if not result.is_valid:
            next_steps.append('Review and address validation issues')
            next_steps.append('Contact support if issues persist')
        if risk_level == 'high':
            next_steps.append('Immediate security review required')
            next_steps.append('Consider temporarily suspending the license')
        if any('expire' in issue for issue in result.issues):
            next_steps.append('Plan for license renewal')
        if any('activation' in issue for issue in result.issues):
            next_steps.append('Review activation patterns and limits')
        next_steps.extend(result.recommendations)
        if result.is_valid and risk_level == 'low':
            next_steps.append('Continue regular monitoring')
            next_steps.append('Schedule periodic verification')

        return {
            'summary': summary,
            'riskLevel': risk_level,
            'securityScore': round(result.confidence),
            'details': details,
            'nextSteps': next_steps,
        }

    def rules(self) -> dict:
        """Current validation rules and thresholds."""
        return {
            'format': {
                'pattern': KEY_FORMAT_RE.pattern,
                'description': 'Four dash-separated 5-character segments, last character of each is a checksum',
            },
            'checksum': {
                'algorithm': 'modulo sum',
                'description': 'Each segment includes a checksum character based on character sum',
            },
            'expiration': {
                'warningThreshold': EXPIRY_WARNING_DAYS,
                'criticalThreshold': 0,
                'description': 'License expiration warnings and enforcement',
            },
            'activation': {
                'warningThreshold': HIGH_USAGE_RATIO,
                'criticalThreshold': 1.0,
                'description': 'Activation limit monitoring and enforcement',
            },
            'hardware': {
                'strictMode': True,
                'maxBindings': MAX_HARDWARE_BINDINGS,
                'description': 'Hardware binding validation and limits',
            },
            'confidence': {
                'highThreshold': LOW_RISK_CONFIDENCE,
                'mediumThreshold': VALID_CONFIDENCE,
                'lowThreshold': 0,
                'description': 'Confidence score thresholds for risk assessment',
            },
        }

    def stats(self, now: Optional[datetime] = None) -> dict:
        """Verification activity over the last 24 hours."""
        now = now or datetime.utcnow()
        total = self.repository.count_licenses()
        active = self.repository.count_licenses(status='active')
        recent = len(self.repository.licenses_verified_since(now - timedelta(hours=24)))
        activations = self.repository.count_active_activations()
        return {
            'totalLicenses': total,
            'activeLicenses': active,
            'recentVerifications': recent,
            'totalActivations': activations,
            'verificationRate': f'{recent / total * 100:.2f}%' if total else '0%',
            'averageActivationsPerLicense': f'{activations / total:.2f}' if total else '0',
        }
