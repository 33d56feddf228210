from poslicense.models import License
from poslicense.services.key_validator import KeyValidator


def test_init_db(runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Database initialized' in result.output


def test_seed_demo(runner):
    result = runner.invoke(args=['seed-demo', '--type', 'yearly', '--email', 'demo@shop.example'])
    assert result.exit_code == 0
    assert 'Issued yearly license' in result.output

    license = License.query.filter_by(client_email='demo@shop.example').one()
    assert license.expires_at is not None
    assert license.created_by == 'cli'
    assert KeyValidator.validate(license.license_key).is_valid
