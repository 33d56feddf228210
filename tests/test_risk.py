from datetime import datetime, timedelta

from poslicense.models import HardwareBinding, License
from poslicense.services.risk import (
    activation_ratio, assess_risk, calculate_verification_score, days_between, risk_level_for,
)

NOW = datetime(2025, 6, 1, 12, 0, 0)


def build_license(**kwargs):
    fields = {
        'license_key': 'K3QZI-P7MXL-R2TB3-W9EH6',
        'type': 'lifetime',
        'status': 'active',
        'client_name': 'Corner Shop',
        'client_email': 'owner@cornershop.com',
        'max_activations': 10,
        'activation_count': 0,
        'expires_at': None,
        'last_verified_at': NOW,
        'hardware_binding': None,
    }
    fields.update(kwargs)
    return License(**fields)


def test_high_activation_usage_alone_is_medium():
    risk = assess_risk(build_license(activation_count=9, max_activations=10), NOW)
    assert risk.score == 30
    assert risk.risk_level == 'medium'
    assert risk.factors == ['High activation usage']


def test_clean_license_is_low_risk():
    risk = assess_risk(build_license(), NOW)
    assert risk.score == 0
    assert risk.risk_level == 'low'
    assert risk.factors == []


def test_expiring_and_expired_factors_stack():
    risk = assess_risk(build_license(expires_at=NOW - timedelta(days=2)), NOW)
    assert risk.factors == ['License expiring soon', 'License expired']
    assert risk.score == 70
    assert risk.risk_level == 'high'


def test_expiring_soon_only():
    risk = assess_risk(build_license(expires_at=NOW + timedelta(days=10)), NOW)
    assert risk.factors == ['License expiring soon']
    assert risk.score == 20


def test_stale_verification_and_suspension():
    license = build_license(status='suspended', last_verified_at=NOW - timedelta(days=120))
    risk = assess_risk(license, NOW)
    assert 'License suspended' in risk.factors
    assert 'Long time since verification' in risk.factors
    assert risk.score == 75


def test_multiple_hardware_bindings():
    binding = HardwareBinding(allowed_hardware_ids=('a', 'b', 'c', 'd'), max_hardware_bindings=5)
    risk = assess_risk(build_license(hardware_binding=binding), NOW)
    assert risk.factors == ['Multiple hardware bindings']
    assert risk.score == 25


def test_risk_score_is_not_clamped():
    license = build_license(status='suspended', activation_count=10, expires_at=NOW - timedelta(days=1),
                            last_verified_at=NOW - timedelta(days=200),
                            hardware_binding=HardwareBinding(allowed_hardware_ids=('a', 'b', 'c', 'd')))
    assert assess_risk(license, NOW).score == 30 + 20 + 50 + 15 + 25 + 60


def test_risk_level_thresholds():
    assert risk_level_for(0) == 'low'
    assert risk_level_for(29) == 'low'
    assert risk_level_for(30) == 'medium'
    assert risk_level_for(59) == 'medium'
    assert risk_level_for(60) == 'high'


def test_verification_score_deductions():
    assert calculate_verification_score(build_license(), NOW) == 100
    assert calculate_verification_score(build_license(activation_count=8), NOW) == 90
    assert calculate_verification_score(build_license(activation_count=10), NOW) == 80
    assert calculate_verification_score(build_license(status='suspended'), NOW) == 60
    assert calculate_verification_score(
        build_license(last_verified_at=NOW - timedelta(days=45)), NOW) == 95
    assert calculate_verification_score(
        build_license(last_verified_at=NOW - timedelta(days=100)), NOW) == 85


def test_verification_score_clamps_at_zero():
    license = build_license(status='suspended', activation_count=10, expires_at=NOW - timedelta(days=1),
                            last_verified_at=NOW - timedelta(days=100))
    assert calculate_verification_score(license, NOW) == 0


def test_days_between_rounds_up():
    assert days_between(NOW + timedelta(hours=1), NOW) == 1
    assert days_between(NOW + timedelta(days=3), NOW) == 3
    assert days_between(NOW - timedelta(hours=1), NOW) == 0


def test_activation_ratio():
    assert activation_ratio(build_license(activation_count=5, max_activations=10)) == 0.5
    assert activation_ratio(build_license(activation_count=0, max_activations=0)) == 0.0
