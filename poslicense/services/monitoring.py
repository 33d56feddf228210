"""
License monitoring: enhanced listings, statistics, overview and alerts.

Every number is recomputed from the database on each call.
"""

from datetime import datetime, timedelta
from typing import Optional
import logging

from poslicense.services.risk import (
    EXPIRY_WARNING_DAYS, HIGH_USAGE_RATIO, assess_risk, calculate_verification_score, days_between,
)

logger = logging.getLogger(__name__)

MONITORING_WINDOW_HOURS = 24
MONITORING_LIMIT = 50
RECENT_ACTIVATION_DAYS = 7
SUSPICIOUS_ACTIVATIONS_PER_DAY = 3
EXPIRY_HIGH_DAYS = 7


def enhance(license, now=None):
    """License dict with derived riskLevel, verificationScore and riskFactors."""
    risk = assess_risk(license, now)
    data = license.to_dict()
    data['riskLevel'] = risk.risk_level
    data['riskFactors'] = risk.factors
    data['verificationScore'] = calculate_verification_score(license, now)
    return data


class MonitoringService:

    def __init__(self, repository):
        self.repository = repository

    def list_enhanced(self, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        return [enhance(license, now) for license in self.repository.all_licenses()]

    def stats(self, now: Optional[datetime] = None) -> dict:
        """
        Aggregate license statistics.

        Returns:
            Dict with status counts, type and risk distribution, average
            verification score and the number of active activations
        """
        now = now or datetime.utcnow()
        licenses = self.repository.all_licenses()

        risk_distribution = {'low': 0, 'medium': 0, 'high': 0}
        total_score = 0
        for license in licenses:
            risk_distribution[assess_risk(license, now).risk_level] += 1
            total_score += calculate_verification_score(license, now)

        return {
            'totalLicenses': len(licenses),
            'activeLicenses': self.repository.count_licenses(status='active'),
            'expiredLicenses': self.repository.count_licenses(status='expired'),
            'suspendedLicenses': self.repository.count_licenses(status='suspended'),
            'typeDistribution': self.repository.count_by_type(),
            'riskDistribution': risk_distribution,
            'averageVerificationScore': round(total_score / len(licenses)) if licenses else 0,
            'totalActivations': self.repository.count_active_activations(),
        }

    def overview(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        licenses = self.repository.all_licenses()

        def count(status):
            return sum(1 for license in licenses if license.status == status)

        expiring_soon = 0
        for license in licenses:
            if license.expires_at:
                days_left = days_between(license.expires_at, now)
                if 0 < days_left <= EXPIRY_WARNING_DAYS:
                    expiring_soon += 1

        return {
            'statusOverview': {
                'total': len(licenses),
                'active': count('active'),
                'expired': count('expired'),
                'suspended': count('suspended'),
                'cancelled': count('cancelled'),
                'expiringSoon': expiring_soon,
            },
            'licenses': [license.to_dict() for license in licenses],
        }

    def recent(self, now: Optional[datetime] = None) -> dict:
        """Verifications and activations of the last 24 hours."""
        now = now or datetime.utcnow()
        since = now - timedelta(hours=MONITORING_WINDOW_HOURS)
        verifications = self.repository.licenses_verified_since(since, limit=MONITORING_LIMIT)
        activations = self.repository.activations_since(since, limit=MONITORING_LIMIT)

        activation_data = []
        for activation in activations:
            data = activation.to_dict()
            data['licenseKey'] = activation.license.license_key
            data['clientName'] = activation.license.client_name
            activation_data.append(data)

        return {
            'recentVerifications': len(verifications),
            'recentActivations': len(activations),
            'systemHealth': {
                'databaseStatus': 'healthy',
                'apiStatus': 'healthy',
                'lastCheck': now.isoformat() + 'Z',
            },
            'monitoringData': {
                'verifications': [license.to_dict() for license in verifications],
                'activations': activation_data,
            },
        }

    def license_monitoring(self, license, now: Optional[datetime] = None) -> dict:
        """Per-license activity metrics and alerts."""
        now = now or datetime.utcnow()
        activations = self.repository.find_activations_by_license(license.id)
        payments = list(license.payments)
        since = now - timedelta(days=RECENT_ACTIVATION_DAYS)

        metrics = {
            'totalActivations': len(activations),
            'activeActivations': sum(1 for a in activations if a.is_active),
            'recentActivations': sum(1 for a in activations if a.activated_at and a.activated_at >= since),
            'suspiciousActivity': sum(
                1 for a in activations
                if a.deactivation_reason and ('Security' in a.deactivation_reason
                                              or 'violation' in a.deactivation_reason)
            ),
            'lastActivity': activations[0].to_dict()['activatedAt'] if activations else None,
            'totalPayments': len(payments),
            'lastPayment': payments[0].to_dict()['createdAt'] if payments else None,
        }
        return {
            'license': enhance(license, now),
            'metrics': metrics,
            'alerts': self.alerts(license, activations, now),
        }

    def alerts(self, license, activations=None, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        if activations is None:
            activations = self.repository.find_activations_by_license(license.id)
        timestamp = now.isoformat() + 'Z'
        alerts = []

        def alert(alert_type, severity, message):
            alerts.append({'type': alert_type, 'severity': severity, 'message': message, 'timestamp': timestamp})

        if license.expires_at:
            days_left = days_between(license.expires_at, now)
            if days_left <= 0:
                alert('expiration', 'critical', 'License has expired')
            elif days_left <= EXPIRY_HIGH_DAYS:
                alert('expiration', 'high', f'License expires in {days_left} days')
            elif days_left <= EXPIRY_WARNING_DAYS:
                alert('expiration', 'medium', f'License expires in {days_left} days')

        if license.activation_count >= license.max_activations * HIGH_USAGE_RATIO:
            severity = 'high' if license.activation_count >= license.max_activations else 'medium'
            alert('activation_limit', severity,
                  f'License activation limit: {license.activation_count}/{license.max_activations}')

        last_day = now - timedelta(days=1)
        recent = [a for a in activations if a.activated_at and a.activated_at >= last_day]
        if len(recent) > SUSPICIOUS_ACTIVATIONS_PER_DAY:
            alert('suspicious_activity', 'medium',
                  f'Multiple recent activations detected ({len(recent)} in 24 hours)')

        if license.type != 'lifetime':
            payment = self.repository.latest_payment(license.id)
            if payment is not None and payment.status == 'pending':
                alert('payment', 'high', 'Payment is pending')

        return alerts
