from flask import Blueprint, current_app, jsonify, request

from poslicense.errors import LicenseNotFound, TemplateNotFound
from poslicense.forms import (
    CreateLicenseForm, GenerateFromTemplateForm, HardwareBindingForm, StatusForm, ValidateKeyForm,
    VerifyLicenseForm,
)
from poslicense.services.binding import (
    SystemInfo, add_to_binding, domain_matches, remove_from_binding, update_binding_settings,
)
from poslicense.services.key_validator import KeyValidator
from poslicense.services.monitoring import enhance
from poslicense.services.templates import get_template, list_templates, template_stats
from poslicense.utils.decorators import client_ip

bp = Blueprint("licenses", __name__, url_prefix="/api/licenses")


def _services():
    return current_app.extensions['poslicense']


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _invalid(form):
    return jsonify({'success': False, 'error': 'Invalid request', 'errors': form.error_messages()}), 400


def _bad_request(message):
    return jsonify({'success': False, 'error': message}), 400


def _get_license(license_id):
    license = _services()['repository'].get(license_id)
    if license is None:
        raise LicenseNotFound('License not found')
    return license


# ---------------------------
# Licenses
# ---------------------------
@bp.route("", methods=["POST"])
def create_license():
    form = CreateLicenseForm()
    if not form.validate():
        return _invalid(form)

    body = _json_body()
    allowed_domains = body.get('allowedDomains')
    if allowed_domains is not None and (not isinstance(allowed_domains, list)
                                        or not all(isinstance(d, str) for d in allowed_domains)):
        return _bad_request('allowedDomains must be a list of strings')

    issuer = _services()['issuer']
    try:
        license = issuer.create(
            form.type.data,
            form.clientName.data.strip(),
            form.clientEmail.data.strip(),
            max_users=form.maxUsers.data or 1,
            max_stores=form.maxStores.data or 1,
            max_activations=form.maxActivations.data or 3,
            allowed_domains=allowed_domains,
            hardware_binding=body.get('hardwareBinding'),
            notes=form.notes.data or None,
        )
    except ValueError as e:
        return _bad_request(str(e))

    return jsonify(issuer.describe(license)), 201


@bp.route("", methods=["GET"])
def list_licenses():
    return jsonify({'licenses': _services()['monitoring'].list_enhanced()})


@bp.route("/stats", methods=["GET"])
def license_stats():
    return jsonify(_services()['monitoring'].stats())


@bp.route("/overview", methods=["GET"])
def license_overview():
    return jsonify(_services()['monitoring'].overview())


@bp.route("/monitoring", methods=["GET"])
def monitoring():
    return jsonify(_services()['monitoring'].recent())


@bp.route("/<int:license_id>", methods=["GET"])
def license_detail(license_id):
    return jsonify({'license': enhance(_get_license(license_id))})


@bp.route("/<int:license_id>/monitoring", methods=["GET"])
def license_monitoring(license_id):
    license = _get_license(license_id)
    return jsonify(_services()['monitoring'].license_monitoring(license))


@bp.route("/<int:license_id>/status", methods=["PATCH"])
def change_status(license_id):
    form = StatusForm()
    if not form.validate():
        return _invalid(form)

    license = _get_license(license_id)
    _services()['activation'].change_status(license, form.status.data)
    return jsonify({'success': True, 'license': license.to_dict()})


@bp.route("/<int:license_id>/domains", methods=["PUT"])
def update_domains(license_id):
    domains = _json_body().get('allowedDomains')
    if not isinstance(domains, list) or not all(isinstance(d, str) and d.strip() for d in domains):
        return _bad_request('allowedDomains must be a list of non-empty strings')

    license = _get_license(license_id)
    cleaned = []
    for domain in domains:
        domain = domain.strip().lower()
        if domain not in cleaned:
            cleaned.append(domain)
    _services()['repository'].update(license, allowed_domains=cleaned or None)
    current_app.logger.info(f"Updated allowed domains of license {license.id}: {cleaned}")
    return jsonify({'success': True, 'license': license.to_dict()})


# ---------------------------
# Hardware binding
# ---------------------------
@bp.route("/<int:license_id>/hardware-binding", methods=["GET"])
def hardware_binding_status(license_id):
    license = _get_license(license_id)
    binding = license.hardware_binding
    domain = request.host.split(':')[0].lower()
    patterns = binding.allowed_domains if binding is not None and not binding.malformed else ()

    repository = _services()['repository']
    return jsonify({
        'isAllowed': not patterns or domain_matches(domain, patterns),
        'currentSystem': {
            'domain': domain,
            'userAgent': request.headers.get('User-Agent', 'unknown'),
            'ipAddress': client_ip(),
        },
        'hardwareBinding': binding.to_dict() if binding is not None else None,
        'activeActivations': [a.to_dict() for a in repository.find_activations_by_license(license.id,
                                                                                          active_only=True)],
        'activationCount': license.activation_count,
        'maxActivations': license.max_activations,
    })


@bp.route("/<int:license_id>/hardware-binding", methods=["POST"])
def update_hardware_binding(license_id):
    form = HardwareBindingForm()
    if not form.validate():
        return _invalid(form)

    license = _get_license(license_id)
    hardware_id = (form.hardwareId.data or '').strip() or None
    domain = (form.domain.data or '').strip().lower() or None
    body = _json_body()

    try:
        if form.action.data == 'add':
            binding = add_to_binding(license.hardware_binding, hardware_id=hardware_id, domain=domain)
        elif form.action.data == 'remove':
            binding = remove_from_binding(license.hardware_binding, hardware_id=hardware_id, domain=domain)
        else:
            binding = update_binding_settings(license.hardware_binding,
                                              max_hardware_bindings=body.get('maxHardwareBindings'),
                                              strict_mode=body.get('strictMode'))
    except ValueError as e:
        return _bad_request(str(e))

    _services()['repository'].update(license, hardware_binding=binding)
    current_app.logger.info(f"Hardware binding of license {license.id} updated ({form.action.data})")
    return jsonify({'success': True, 'hardwareBinding': binding.to_dict(), 'license': license.to_dict()})


# ---------------------------
# Key validation and verification
# ---------------------------
@bp.route("/validate-key", methods=["POST"])
def validate_key():
    form = ValidateKeyForm()
    if not form.validate():
        return _invalid(form)

    license_key = form.licenseKey.data.strip()
    license = _services()['repository'].find_by_key(license_key)
    return jsonify({
        'validation': KeyValidator.validate(license_key).to_dict(),
        'isUnique': license is None,
        'exists': license is not None,
        'licenseKey': license_key,
        'license': enhance(license) if license is not None else None,
    })


@bp.route("/verify", methods=["POST"])
def verify_license():
    form = VerifyLicenseForm()
    if not form.validate():
        return _invalid(form)

    try:
        system_info = SystemInfo.from_dict(_json_body().get('systemInfo'))
    except ValueError as e:
        return _bad_request(str(e))

    pipeline = _services()['verification']
    license_key = form.licenseKey.data.strip()
    result = pipeline.verify(license_key, system_info)

    response = result.to_dict(include_details=form.includeDetails.data)
    response['licenseKey'] = license_key
    if form.generateReport.data and result.found:
        response['report'] = pipeline.build_report(result, system_info)
    return jsonify(response), 200 if result.found else 404


@bp.route("/verify/rules", methods=["GET"])
def verification_rules():
    return jsonify({'rules': _services()['verification'].rules()})


@bp.route("/verify/stats", methods=["GET"])
def verification_stats():
    return jsonify({'stats': _services()['verification'].stats()})


# ---------------------------
# Templates
# ---------------------------
@bp.route("/templates", methods=["GET"])
def templates():
    return jsonify({'templates': [t.to_dict() for t in list_templates()]})


@bp.route("/templates/stats", methods=["GET"])
def templates_stats():
    return jsonify({'stats': template_stats()})


@bp.route("/templates/<template_id>", methods=["GET"])
def template_detail(template_id):
    template = get_template(template_id)
    if template is None:
        raise TemplateNotFound()
    return jsonify({'template': template.to_dict()})


@bp.route("/templates/<template_id>/generate", methods=["POST"])
def generate_from_template(template_id):
    form = GenerateFromTemplateForm()
    if not form.validate():
        return _invalid(form)

    issuer = _services()['issuer']
    try:
        licenses = issuer.generate_from_template(
            template_id,
            count=form.count.data or 1,
            client_name=(form.clientName.data or '').strip() or None,
            client_email=(form.clientEmail.data or '').strip() or None,
        )
    except ValueError as e:
        return _bad_request(str(e))

    template = get_template(template_id)
    return jsonify({
        'licenses': [license.to_dict() for license in licenses],
        'licenseKeys': [license.license_key for license in licenses],
        'count': len(licenses),
        'template': template.name,
        'message': f'Generated {len(licenses)} licenses from template',
    }), 201
