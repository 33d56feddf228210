from flask import Blueprint, current_app, g, jsonify, request

from poslicense.forms import ActivateLicenseForm, CheckActivationForm, DeactivateForm
from poslicense.services.binding import SystemInfo
from poslicense.utils.decorators import client_ip, license_required

bp = Blueprint("activation", __name__, url_prefix="/api/license")


def _system_info(with_ip=False):
    """SystemInfo from the request body; None if absent (ValueError if malformed)."""
    body = request.get_json(silent=True) or {}
    data = body.get('systemInfo') if isinstance(body, dict) else None
    return SystemInfo.from_dict(data, ip_address=client_ip() if with_ip else None)


SUMMARY_FIELDS = ('id', 'licenseKey', 'type', 'status', 'clientName', 'clientEmail', 'maxUsers',
                  'maxStores', 'expiresAt', 'lastVerifiedAt')


def _license_summary(license):
    data = license.to_dict()
    return {name: data[name] for name in SUMMARY_FIELDS}


def _invalid(form):
    return jsonify({'success': False, 'error': 'Invalid request', 'errors': form.error_messages()}), 400


@bp.route("/activate", methods=["POST"])
def activate():
    form = ActivateLicenseForm()
    if not form.validate():
        return _invalid(form)

    try:
        system_info = _system_info(with_ip=True)
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    activation = current_app.extensions['poslicense']['activation'].activate(
        form.licenseKey.data.strip(),
        system_info,
        client_email=form.clientEmail.data.strip(),
    )
    return jsonify({
        'success': True,
        'message': 'License activated successfully',
        'activationKey': activation.activation_key,
        'activation': activation.to_dict(),
        'license': _license_summary(activation.license),
    }), 201


@bp.route("/deactivate", methods=["POST"])
def deactivate():
    form = DeactivateForm()
    if not form.validate():
        return _invalid(form)

    activation = current_app.extensions['poslicense']['activation'].deactivate(
        form.activationKey.data.strip(),
        reason=(form.reason.data or '').strip() or 'Manual deactivation',
        license_key=form.licenseKey.data.strip(),
    )
    return jsonify({
        'success': True,
        'message': 'License deactivated successfully',
        'activation': activation.to_dict(),
    })


@bp.route("/check", methods=["POST"])
def check():
    form = CheckActivationForm()
    if not form.validate():
        return _invalid(form)

    try:
        system_info = _system_info()
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    activation = current_app.extensions['poslicense']['activation'].check(
        form.activationKey.data.strip(),
        form.licenseKey.data.strip(),
        system_info,
    )
    return jsonify({
        'success': True,
        'valid': True,
        'message': 'License verified successfully',
        'license': _license_summary(activation.license),
    })


@bp.route("/status", methods=["GET"])
@license_required
def status():
    return jsonify({
        'activated': True,
        'activation': g.activation.to_dict(),
        'license': _license_summary(g.license),
    })
