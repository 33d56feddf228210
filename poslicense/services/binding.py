"""
Hardware and domain binding checks.

A license may carry a HardwareBinding restricting which machines (hardware
fingerprints) and which domains may use it. In strict mode at least one of the
two has to match; otherwise the binding is advisory and always passes.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional

from poslicense.errors import HardwareBindingLimit
from poslicense.models import HardwareBinding

WILDCARD = '*'
WILDCARD_PREFIX = '*.'


@dataclass(frozen=True)
class SystemInfo:
    """Fingerprint of the system asking to use a license."""
    hardware_id: Optional[str] = None
    domain: Optional[str] = None
    ip_address: Optional[str] = None

    @classmethod
    def from_dict(cls, data, ip_address=None):
        """Build from a request's ``systemInfo`` object; None stays None."""
        if not data:
            return None if ip_address is None else cls(ip_address=ip_address)
        if not isinstance(data, dict):
            raise ValueError('systemInfo must be an object')
        hardware_id = data.get('hardwareId')
        domain = data.get('domain')
        return cls(
            hardware_id=str(hardware_id).strip() if hardware_id else None,
            domain=str(domain).strip().lower() if domain else None,
            ip_address=ip_address,
        )

    def to_dict(self):
        return {'hardwareId': self.hardware_id, 'domain': self.domain}


def domain_matches(domain: Optional[str], patterns: Iterable[str]) -> bool:
    """
    Check a domain against allowed patterns.

    Patterns may be an exact domain, ``*`` (any domain) or ``*.suffix``.
    A wildcard matches subdomains only: ``*.example.com`` matches
    ``shop.example.com`` but neither ``example.com`` nor ``badexample.com``.
    """
    if not domain:
        return False
    for pattern in patterns:
        if pattern == WILDCARD or pattern == domain:
            return True
        if pattern.startswith(WILDCARD_PREFIX) and domain.endswith(pattern[1:]):
            return True
    return False


def check_binding(binding: Optional[HardwareBinding], system_info: Optional[SystemInfo]) -> bool:
    """
    Decide whether a system may use a license under its binding.

    Args:
        binding: License hardware binding, None when unrestricted
        system_info: Requesting system, may be None

    Returns:
        True if allowed
    """
    if binding is None:
        return True
    if binding.malformed:
        return False

    system_info = system_info or SystemInfo()
    hardware_allowed = bool(system_info.hardware_id) and \
        system_info.hardware_id in binding.allowed_hardware_ids
    domain_allowed = domain_matches(system_info.domain, binding.allowed_domains)

    return hardware_allowed or domain_allowed or not binding.strict_mode


def empty_binding() -> HardwareBinding:
    return HardwareBinding()


def add_to_binding(binding: Optional[HardwareBinding], hardware_id=None, domain=None) -> HardwareBinding:
    """
    Return a binding with the hardware ID and/or domain added.

    Raises:
        HardwareBindingLimit: the hardware ID would exceed max_hardware_bindings
    """
    binding = binding if binding is not None and not binding.malformed else empty_binding()
    domains = binding.allowed_domains
    hardware_ids = binding.allowed_hardware_ids

    if domain and domain not in domains:
        domains = domains + (domain,)

    if hardware_id and hardware_id not in hardware_ids:
        if len(hardware_ids) >= binding.max_hardware_bindings:
            raise HardwareBindingLimit()
        hardware_ids = hardware_ids + (hardware_id,)

    return replace(binding, allowed_domains=domains, allowed_hardware_ids=hardware_ids)


def remove_from_binding(binding: Optional[HardwareBinding], hardware_id=None, domain=None) -> HardwareBinding:
    binding = binding if binding is not None and not binding.malformed else empty_binding()
    return replace(
        binding,
        allowed_domains=tuple(d for d in binding.allowed_domains if d != domain),
        allowed_hardware_ids=tuple(h for h in binding.allowed_hardware_ids if h != hardware_id),
    )


def update_binding_settings(binding: Optional[HardwareBinding], max_hardware_bindings=None,
                            strict_mode=None) -> HardwareBinding:
    binding = binding if binding is not None and not binding.malformed else empty_binding()
    changes = {}
    if max_hardware_bindings is not None:
        if isinstance(max_hardware_bindings, bool) or not isinstance(max_hardware_bindings, int) \
                or max_hardware_bindings < 1:
            raise ValueError('maxHardwareBindings must be a positive integer')
        if max_hardware_bindings < len(binding.allowed_hardware_ids):
            raise ValueError('maxHardwareBindings cannot be lower than the number of bound hardware IDs')
        changes['max_hardware_bindings'] = max_hardware_bindings
    if strict_mode is not None:
        changes['strict_mode'] = bool(strict_mode)
    return replace(binding, **changes)
