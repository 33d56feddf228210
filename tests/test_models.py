from datetime import datetime, timedelta
import pytest
from sqlalchemy import text

from poslicense import db
from poslicense.models import HardwareBinding, License, LicenseActivation, LicensePayment


def test_license_state_helpers(make_license):
    now = datetime.utcnow()
    license = make_license(expires_at=now - timedelta(minutes=1))
    assert license.is_active
    assert license.is_expired(now)
    assert not make_license().is_expired(now)


def test_license_to_dict_counts_active_activations(make_license):
    license = make_license(activation_count=2)
    db.session.add_all([
        LicenseActivation(activation_key='ACT-1', license=license, hardware_id='HW-1'),
        LicenseActivation(activation_key='ACT-2', license=license, hardware_id='HW-2', is_active=False),
    ])
    db.session.commit()

    data = license.to_dict()
    assert data['activationCount'] == 2
    assert data['activeActivations'] == 1
    assert data['issuedAt'].endswith('Z')
    assert data['expiresAt'] is None


def test_hardware_binding_is_stored_as_json(make_license):
    binding = HardwareBinding(allowed_hardware_ids=('HW-1',), allowed_domains=('*.example.com',))
    license = make_license(hardware_binding=binding, allowed_domains=['shop.example.com'])

    raw = db.session.execute(text('SELECT hardware_binding, allowed_domains FROM license WHERE id = :id'),
                             {'id': license.id}).one()
    assert raw[0] == ('{"allowedHardwareIds":["HW-1"],"allowedDomains":["*.example.com"],'
                      '"strictMode":false,"maxHardwareBindings":1}')
    assert raw[1] == '["shop.example.com"]'

    db.session.expire_all()
    reloaded = db.session.get(License, license.id)
    assert reloaded.hardware_binding == binding
    assert reloaded.allowed_domains == ['shop.example.com']


def test_unparseable_binding_loads_as_malformed(make_license):
    license = make_license()
    db.session.execute(text('UPDATE license SET hardware_binding = :raw WHERE id = :id'),
                       {'raw': '{not json', 'id': license.id})
    db.session.commit()
    db.session.expire_all()

    binding = db.session.get(License, license.id).hardware_binding
    assert binding.malformed
    assert binding.strict_mode
    assert binding.raw == '{not json'
    assert binding.to_dict() is None


@pytest.mark.parametrize('data', [
    'HW-1',
    {'allowedHardwareIds': 'HW-1'},
    {'allowedDomains': [1, 2]},
    {'strictMode': 'yes'},
    {'maxHardwareBindings': 0},
    {'maxHardwareBindings': True},
])
def test_hardware_binding_from_dict_rejects_bad_shapes(data):
    with pytest.raises(ValueError):
        HardwareBinding.from_dict(data)


def test_payment_to_dict(make_license):
    license = make_license()
    payment = LicensePayment(license=license, amount=999, status='completed')
    db.session.add(payment)
    db.session.commit()

    data = payment.to_dict()
    assert data['amount'] == 999.0
    assert data['currency'] == 'USD'
    assert license.payments == [payment]
