from functools import wraps
from flask import current_app, g, jsonify, request


def client_ip():
    """Client IP, honouring proxy headers."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'


def license_required(f):
    """
    Decorator requiring a valid license activation for a route.

    Reads the X-License-Key and X-Activation-Key headers, re-checks the
    activation and exposes it as ``g.activation`` / ``g.license``. Successful
    responses carry X-License-* headers describing the license.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        license_key = request.headers.get('X-License-Key')
        activation_key = request.headers.get('X-Activation-Key')
        if not license_key or not activation_key:
            return jsonify({'success': False, 'error': 'License required',
                            'code': 'license_required'}), 401

        activation = current_app.extensions['poslicense']['activation'].check(activation_key, license_key)
        g.activation = activation
        g.license = activation.license

        response = current_app.make_response(f(*args, **kwargs))
        response.headers['X-License-Valid'] = 'true'
        response.headers['X-License-Type'] = g.license.type
        response.headers['X-License-Client'] = g.license.client_name
        if g.license.expires_at:
            response.headers['X-License-Expires'] = g.license.expires_at.isoformat() + 'Z'
        return response
    return decorated_function
