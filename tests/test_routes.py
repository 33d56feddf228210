from datetime import datetime, timedelta
import pytest

from poslicense import db
from poslicense.models import License, LicenseActivation


def create(client, **overrides):
    payload = {
        'type': 'lifetime',
        'clientName': 'Corner Shop',
        'clientEmail': 'owner@cornershop.com',
        'maxActivations': 2,
    }
    payload.update(overrides)
    return client.post('/api/licenses', json=payload)


def activate(client, license_key, hardware_id, **extra):
    payload = {'licenseKey': license_key, 'clientEmail': 'owner@cornershop.com',
               'systemInfo': {'hardwareId': hardware_id}}
    payload.update(extra)
    return client.post('/api/license/activate', json=payload)


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_create_license(client):
    response = create(client, type='monthly', allowedDomains=['*.example.com'])
    assert response.status_code == 201
    data = response.get_json()
    assert data['validation']['isValid'] is True
    assert data['license']['type'] == 'monthly'
    assert data['license']['expiresAt'] is not None
    assert data['license']['allowedDomains'] == ['*.example.com']
    assert data['riskAssessment']['riskLevel'] in ('low', 'medium', 'high')
    assert License.query.filter_by(license_key=data['licenseKey']).count() == 1


def test_create_license_validation_errors(client):
    response = client.post('/api/licenses', json={'type': 'forever', 'clientName': ''})
    assert response.status_code == 400
    errors = response.get_json()['errors']
    assert 'type' in errors
    assert 'clientName' in errors
    assert 'clientEmail' in errors


def test_create_license_rejects_bad_binding(client):
    response = create(client, hardwareBinding={'allowedHardwareIds': 'HW-1'})
    assert response.status_code == 400


def test_activation_flow_over_http(client):
    license_key = create(client).get_json()['licenseKey']

    first = activate(client, license_key, 'HW-1', clientEmail='owner@cornershop.com')
    assert first.status_code == 201
    body = first.get_json()
    assert body['success'] is True
    assert body['activation']['hardwareId'] == 'HW-1'
    assert body['license']['licenseKey'] == license_key

    assert activate(client, license_key, 'HW-2').status_code == 201

    third = activate(client, license_key, 'HW-3')
    assert third.status_code == 403
    assert third.get_json()['code'] == 'activation_limit_reached'
    assert third.get_json()['success'] is False
    assert third.get_json()['activationCount'] == 2
    assert third.get_json()['maxActivations'] == 2


def test_activation_uses_forwarded_ip(client):
    license_key = create(client).get_json()['licenseKey']
    response = client.post('/api/license/activate',
                           json={'licenseKey': license_key, 'clientEmail': 'owner@cornershop.com',
                                 'systemInfo': {'hardwareId': 'HW-1'}},
                           headers={'X-Forwarded-For': '203.0.113.7, 10.0.0.1'})
    assert response.get_json()['activation']['ipAddress'] == '203.0.113.7'


def test_activation_error_codes(client, make_license):
    response = activate(client, 'K3QZI-P7MXL-R2TB3-W9EH6', 'HW-1')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'License key not found'

    suspended = make_license(status='suspended')
    assert activate(client, suspended.license_key, 'HW-1').status_code == 403

    expired = make_license(expires_at=datetime.utcnow() - timedelta(days=1))
    response = activate(client, expired.license_key, 'HW-1')
    assert response.status_code == 403
    assert response.get_json()['code'] == 'expired'

    tampered = make_license(license_key='K3QZJ-P7MXL-R2TB3-W9EH6')
    assert activate(client, tampered.license_key, 'HW-1').status_code == 400

    assert client.post('/api/license/activate', json={}).status_code == 400
    assert client.post('/api/license/activate',
                       json={'licenseKey': suspended.license_key, 'clientEmail': 'owner@cornershop.com',
                             'systemInfo': 'HW-1'}).status_code == 400


def test_activation_requires_client_email(client):
    license_key = create(client).get_json()['licenseKey']
    response = client.post('/api/license/activate',
                           json={'licenseKey': license_key, 'systemInfo': {'hardwareId': 'HW-1'}})
    assert response.status_code == 400
    assert response.get_json()['errors']['clientEmail'] == ['Client email is required']
    assert License.query.filter_by(license_key=license_key).one().activation_count == 0


@pytest.mark.parametrize('license_key', [12345, True, {'key': 'K3QZI-P7MXL-R2TB3-W9EH6'}])
def test_non_string_license_key_is_rejected(client, license_key):
    response = client.post('/api/licenses/verify', json={'licenseKey': license_key})
    assert response.status_code == 400
    assert 'licenseKey' in response.get_json()['errors']

    response = client.post('/api/license/activate', json={
        'licenseKey': license_key, 'clientEmail': 'owner@cornershop.com'})
    assert response.status_code == 400
    assert 'licenseKey' in response.get_json()['errors']

    response = client.post('/api/licenses/validate-key', json={'licenseKey': license_key})
    assert response.status_code == 400


@pytest.mark.parametrize('client_name', [42, False])
def test_non_string_client_name_is_rejected(client, client_name):
    response = create(client, clientName=client_name)
    assert response.status_code == 400
    assert 'clientName' in response.get_json()['errors']
    assert License.query.count() == 0


def test_null_optional_fields_count_as_missing(client):
    response = create(client, notes=None)
    assert response.status_code == 201
    assert response.get_json()['license']['notes'] is None


def test_create_license_rejects_binding_over_its_limit(client):
    response = create(client, hardwareBinding={'allowedHardwareIds': ['HW-1', 'HW-2'], 'maxHardwareBindings': 1})
    assert response.status_code == 400
    assert License.query.count() == 0


def test_deactivate_and_check(client):
    license_key = create(client).get_json()['licenseKey']
    activation_key = activate(client, license_key, 'HW-1').get_json()['activationKey']

    check = client.post('/api/license/check', json={
        'activationKey': activation_key, 'licenseKey': license_key, 'systemInfo': {'hardwareId': 'HW-1'}})
    assert check.status_code == 200
    assert check.get_json()['valid'] is True

    response = client.post('/api/license/deactivate', json={
        'activationKey': activation_key, 'licenseKey': license_key, 'reason': 'Replaced terminal'})
    assert response.status_code == 200
    assert response.get_json()['activation']['deactivationReason'] == 'Replaced terminal'

    check = client.post('/api/license/check', json={'activationKey': activation_key, 'licenseKey': license_key})
    assert check.status_code == 404


def test_check_system_mismatch(client):
    license_key = create(client).get_json()['licenseKey']
    activation_key = activate(client, license_key, 'HW-1').get_json()['activationKey']

    response = client.post('/api/license/check', json={
        'activationKey': activation_key, 'licenseKey': license_key, 'systemInfo': {'hardwareId': 'HW-2'}})
    assert response.status_code == 403
    assert response.get_json()['code'] == 'system_mismatch'


def test_status_requires_license_headers(client):
    assert client.get('/api/license/status').status_code == 401

    license_key = create(client).get_json()['licenseKey']
    activation_key = activate(client, license_key, 'HW-1').get_json()['activationKey']

    response = client.get('/api/license/status',
                          headers={'X-License-Key': license_key, 'X-Activation-Key': activation_key})
    assert response.status_code == 200
    assert response.get_json()['activated'] is True
    assert response.headers['X-License-Valid'] == 'true'
    assert response.headers['X-License-Type'] == 'lifetime'
    assert response.headers['X-License-Client'] == 'Corner Shop'

    response = client.get('/api/license/status',
                          headers={'X-License-Key': license_key, 'X-Activation-Key': 'WRONG'})
    assert response.status_code == 404


def test_verify_endpoint(client, make_license):
    license = make_license(status='suspended')
    response = client.post('/api/licenses/verify', json={
        'licenseKey': license.license_key, 'includeDetails': True, 'generateReport': True})
    assert response.status_code == 200
    data = response.get_json()
    assert data['isValid'] is False
    assert data['checks']['status'] is False
    assert data['license']['id'] == license.id
    assert data['report']['riskLevel'] == 'high'
    assert data['verifiedAt'].endswith('Z')


def test_verify_without_details(client, make_license):
    data = client.post('/api/licenses/verify', json={'licenseKey': make_license().license_key}).get_json()
    assert data['isValid'] is True
    assert 'license' not in data
    assert 'report' not in data


def test_verify_unknown_key(client):
    response = client.post('/api/licenses/verify', json={'licenseKey': 'K3QZI-P7MXL-R2TB3-W9EH6'})
    assert response.status_code == 404
    data = response.get_json()
    assert data['isValid'] is False
    assert data['confidence'] == 0


def test_verify_requires_key(client):
    assert client.post('/api/licenses/verify', json={}).status_code == 400


def test_verify_rules_and_stats(client, make_license):
    make_license()
    rules = client.get('/api/licenses/verify/rules').get_json()['rules']
    assert rules['confidence']['mediumThreshold'] == 70
    stats = client.get('/api/licenses/verify/stats').get_json()['stats']
    assert stats['totalLicenses'] == 1


def test_validate_key_endpoint(client, make_license):
    license = make_license()
    data = client.post('/api/licenses/validate-key', json={'licenseKey': license.license_key}).get_json()
    assert data['exists'] is True
    assert data['isUnique'] is False
    assert data['license']['id'] == license.id

    data = client.post('/api/licenses/validate-key', json={'licenseKey': 'bad'}).get_json()
    assert data['validation'] == {'isValid': False, 'confidence': 50, 'issues': ['Invalid format']}
    assert data['exists'] is False


def test_list_stats_overview(client, make_license):
    make_license(max_activations=10, activation_count=9)
    licenses = client.get('/api/licenses').get_json()['licenses']
    assert licenses[0]['riskLevel'] == 'medium'
    assert client.get('/api/licenses/stats').get_json()['totalLicenses'] == 1
    assert client.get('/api/licenses/overview').get_json()['statusOverview']['active'] == 1
    assert client.get('/api/licenses/monitoring').get_json()['recentVerifications'] == 1


def test_license_detail_and_monitoring(client, make_license):
    license = make_license()
    assert client.get(f'/api/licenses/{license.id}').get_json()['license']['id'] == license.id
    data = client.get(f'/api/licenses/{license.id}/monitoring').get_json()
    assert data['metrics']['totalActivations'] == 0
    assert client.get('/api/licenses/9999/monitoring').status_code == 404


def test_change_status_endpoint(client, make_license):
    license_key = create(client).get_json()['licenseKey']
    activation_key = activate(client, license_key, 'HW-1').get_json()['activationKey']
    license = License.query.filter_by(license_key=license_key).one()

    response = client.patch(f'/api/licenses/{license.id}/status', json={'status': 'suspended'})
    assert response.status_code == 200
    assert response.get_json()['license']['status'] == 'suspended'
    activation = LicenseActivation.query.filter_by(activation_key=activation_key).one()
    assert activation.is_active is False
    assert activation.deactivation_reason == 'License suspended'

    assert client.patch(f'/api/licenses/{license.id}/status', json={'status': 'paused'}).status_code == 400


def test_update_domains(client, make_license):
    license = make_license()
    response = client.put(f'/api/licenses/{license.id}/domains',
                          json={'allowedDomains': ['Shop.Example.com', 'shop.example.com', '*.pos.io']})
    assert response.status_code == 200
    assert response.get_json()['license']['allowedDomains'] == ['shop.example.com', '*.pos.io']
    assert client.put(f'/api/licenses/{license.id}/domains', json={'allowedDomains': 'x'}).status_code == 400


def test_hardware_binding_endpoints(client, make_license):
    license = make_license()
    url = f'/api/licenses/{license.id}/hardware-binding'

    response = client.post(url, json={'action': 'add', 'hardwareId': 'HW-1', 'domain': 'shop.example.com'})
    assert response.status_code == 200
    assert response.get_json()['hardwareBinding']['allowedHardwareIds'] == ['HW-1']

    response = client.post(url, json={'action': 'add', 'hardwareId': 'HW-2'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'hardware_binding_limit'

    response = client.post(url, json={'action': 'update-settings', 'maxHardwareBindings': 2, 'strictMode': True})
    binding = response.get_json()['hardwareBinding']
    assert binding['maxHardwareBindings'] == 2
    assert binding['strictMode'] is True

    response = client.post(url, json={'action': 'remove', 'hardwareId': 'HW-1'})
    assert response.get_json()['hardwareBinding']['allowedHardwareIds'] == []

    status = client.get(url).get_json()
    assert status['hardwareBinding']['allowedDomains'] == ['shop.example.com']
    assert status['maxActivations'] == license.max_activations

    assert client.post(url, json={'action': 'explode'}).status_code == 400


def test_template_endpoints(client):
    templates = client.get('/api/licenses/templates').get_json()['templates']
    assert len(templates) == 4
    assert client.get('/api/licenses/templates/1').get_json()['template']['name'] == 'Basic POS'
    assert client.get('/api/licenses/templates/99').status_code == 404
    assert client.get('/api/licenses/templates/stats').get_json()['stats']['totalTemplates'] == 4

    response = client.post('/api/licenses/templates/4/generate', json={'count': 2, 'clientName': 'Pop-up Store'})
    assert response.status_code == 201
    data = response.get_json()
    assert data['count'] == 2
    assert all(license['type'] == 'trial' for license in data['licenses'])
    assert all(license['clientName'] == 'Pop-up Store' for license in data['licenses'])

    assert client.post('/api/licenses/templates/1/generate', json={'count': 51}).status_code == 400
    assert client.post('/api/licenses/templates/99/generate', json={'count': 1}).status_code == 404


def test_unknown_route_returns_json(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['success'] is False
