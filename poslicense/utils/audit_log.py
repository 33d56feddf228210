"""
Audit logging for license lifecycle events.

Events are written as JSON lines to ``AUDIT_LOG_DIR/license_audit.log``,
rotated daily. Each record carries the action, a description, the license it
concerns and the client IP of the request, if any.
"""

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from flask import request, has_request_context
from pythonjsonlogger.json import JsonFormatter

AUDIT_LOGGER_NAME = 'poslicense.audit'
AUDIT_FILENAME = 'license_audit.log'
SENSITIVE_KEYS = ('password', 'token', 'secret', 'activation_key', 'activationkey')

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


def init_audit_log(app):
    """Attach the JSON file handler configured by AUDIT_LOG_DIR.

    Safe to call once per app instance; handlers from a previous app are
    closed and replaced.
    """
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False

    logs_dir = app.config.get('AUDIT_LOG_DIR')
    if not logs_dir:
        audit_logger.addHandler(logging.NullHandler())
        return

    os.makedirs(logs_dir, exist_ok=True)
    handler = TimedRotatingFileHandler(
        os.path.join(logs_dir, AUDIT_FILENAME),
        when='midnight',
        backupCount=app.config.get('AUDIT_LOG_BACKUP_DAYS', 30),
        encoding='utf-8',
        utc=True,
    )
    handler.setFormatter(JsonFormatter(
        '%(asctime)s %(levelname)s %(message)s',
        rename_fields={'asctime': 'timestamp', 'levelname': 'level'},
    ))
    audit_logger.addHandler(handler)


def _mask(details: dict) -> dict:
    masked = {}
    for k, v in details.items():
        if k.lower() in SENSITIVE_KEYS:
            masked[k] = '***'
        else:
            masked[k] = v
    return masked


def log_action(action: str, description: str, license=None, additional_info: dict = None, success: bool = True):
    """Write one audit record.

    Example: log_action('LICENSE_SUSPENDED', 'Suspended by admin', license=lic, additional_info={'reason': 'fraud'})
    """
    extra = {
        'action': action,
        'success': bool(success),
        'license_id': getattr(license, 'id', None),
        'license_key': getattr(license, 'license_key', None),
        'ip': request.remote_addr if has_request_context() else None,
    }
    if additional_info:
        extra['details'] = _mask(additional_info)

    level = logging.INFO if success else logging.WARNING
    audit_logger.log(level, description, extra=extra)


def log_license_created(license):
    log_action('LICENSE_CREATED', f'License issued to {license.client_name}', license=license,
               additional_info={'type': license.type, 'max_activations': license.max_activations})


def log_license_activated(license, activation):
    log_action('LICENSE_ACTIVATED', f'License activated ({license.activation_count}/{license.max_activations})',
               license=license, additional_info={'hardware_id': activation.hardware_id,
                                                 'domain': activation.domain})


def log_activation_rejected(license_key: str, reason: str):
    log_action('ACTIVATION_REJECTED', reason, additional_info={'license_key': license_key}, success=False)


def log_license_deactivated(activation, reason: str):
    log_action('LICENSE_DEACTIVATED', reason, license=activation.license,
               additional_info={'activation_id': activation.id, 'hardware_id': activation.hardware_id})


def log_status_changed(license, old_status: str, new_status: str):
    log_action('STATUS_CHANGED', f'License status changed: {old_status} -> {new_status}', license=license,
               additional_info={'old_status': old_status, 'new_status': new_status})


def log_verification_failed(license, issues: list):
    log_action('VERIFICATION_FAILED', 'License verification failed', license=license,
               additional_info={'issues': issues}, success=False)


def log_system_mismatch(activation, system_info: dict):
    log_action('SYSTEM_MISMATCH', 'Activation deactivated after hardware/domain change',
               license=activation.license, additional_info={
                   'activation_id': activation.id,
                   'recorded': {'hardwareId': activation.hardware_id, 'domain': activation.domain},
                   'current': system_info,
               }, success=False)
