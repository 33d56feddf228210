"""
License risk assessment and verification scoring.

Two independent scores are computed from a license record:

- ``assess_risk``: additive, unbounded risk score used for admin triage,
  mapped to a low/medium/high level.
- ``calculate_verification_score``: health score from 100 down to 0.

They overlap in inputs but not in weights or scale, and both are returned by
the API, so they are kept as separate functions.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

HIGH_RISK_THRESHOLD = 60
MEDIUM_RISK_THRESHOLD = 30

EXPIRY_WARNING_DAYS = 30
STALE_VERIFICATION_DAYS = 90
RECENT_VERIFICATION_DAYS = 30
HIGH_USAGE_RATIO = 0.8
MAX_HARDWARE_BINDINGS = 3

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class RiskAssessment:
    risk_level: str
    score: int
    factors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {'riskLevel': self.risk_level, 'score': self.score, 'factors': list(self.factors)}


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from earlier to later, rounded up (negative if later < earlier)."""
    return math.ceil((later - earlier).total_seconds() / SECONDS_PER_DAY)


def activation_ratio(license) -> float:
    if not license.max_activations:
        return 1.0 if license.activation_count else 0.0
    return license.activation_count / license.max_activations


def risk_level_for(score: int) -> str:
    if score >= HIGH_RISK_THRESHOLD:
        return 'high'
    if score >= MEDIUM_RISK_THRESHOLD:
        return 'medium'
    return 'low'


def assess_risk(license, now: Optional[datetime] = None) -> RiskAssessment:
    """
    Compute the risk score of a license.

    Args:
        license: License model (or any object with the same attributes)
        now: Reference time (UTC, naive), defaults to utcnow

    Returns:
        RiskAssessment
    """
    now = now or datetime.utcnow()
    factors = []
    score = 0

    if license.activation_count > license.max_activations * HIGH_USAGE_RATIO:
        factors.append('High activation usage')
        score += 30

    if license.expires_at:
        days_until_expiry = days_between(license.expires_at, now)
        # An expired license also counts as expiring soon; both add up.
        if days_until_expiry < EXPIRY_WARNING_DAYS:
            factors.append('License expiring soon')
            score += 20
        if days_until_expiry < 0:
            factors.append('License expired')
            score += 50

    if license.last_verified_at:
        if days_between(now, license.last_verified_at) > STALE_VERIFICATION_DAYS:
            factors.append('Long time since verification')
            score += 15

    binding = license.hardware_binding
    if binding is not None and len(binding.allowed_hardware_ids) > MAX_HARDWARE_BINDINGS:
        factors.append('Multiple hardware bindings')
        score += 25

    if license.status == 'suspended':
        factors.append('License suspended')
        score += 60

    return RiskAssessment(risk_level=risk_level_for(score), score=score, factors=factors)


def calculate_verification_score(license, now: Optional[datetime] = None) -> int:
    """
    Compute the 0-100 verification score of a license.

    Args:
        license: License model
        now: Reference time (UTC, naive), defaults to utcnow

    Returns:
        Score clamped to [0, 100]
    """
    now = now or datetime.utcnow()
    score = 100

    if license.expires_at and license.expires_at < now:
        score -= 50

    ratio = activation_ratio(license)
    if ratio > 0.9:
        score -= 20
    elif ratio > 0.7:
        score -= 10

    if license.status == 'suspended':
        score -= 40

    if license.last_verified_at:
        days_since = days_between(now, license.last_verified_at)
        if days_since > STALE_VERIFICATION_DAYS:
            score -= 15
        elif days_since > RECENT_VERIFICATION_DAYS:
            score -= 5

    return max(0, min(100, score))
