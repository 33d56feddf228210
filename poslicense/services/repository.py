"""
Persistence interface for licenses, activations and payments.

The repository wraps a SQLAlchemy session (``db.session`` in the app) and is
built once in ``create_app``; services receive it as a constructor argument.
Storage failures surface as ``PersistenceError``.
"""

from datetime import datetime
from functools import wraps
from typing import List, Optional
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from poslicense.errors import PersistenceError
from poslicense.models import License, LicenseActivation, LicensePayment

logger = logging.getLogger(__name__)


def _persistence(method):
    """Roll back and re-raise storage errors as PersistenceError."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.exception(f"LicenseRepository.{method.__name__} failed")
            self.session.rollback()
            raise PersistenceError(str(e)) from e
    return wrapper


class LicenseRepository:
    """Data access for the license tables."""

    def __init__(self, session):
        self.session = session

    # ---------------------------
    # Licenses
    # ---------------------------
    @_persistence
    def get(self, license_id) -> Optional[License]:
        return self.session.get(License, license_id)

    @_persistence
    def find_by_key(self, license_key: str) -> Optional[License]:
        return self.session.query(License).filter_by(license_key=license_key).first()

    @_persistence
    def key_exists(self, license_key: str) -> bool:
        return self.session.query(License.id).filter_by(license_key=license_key).first() is not None

    @_persistence
    def create(self, license: License) -> License:
        self.session.add(license)
        self.session.commit()
        return license

    @_persistence
    def update(self, license: License, **changes) -> License:
        for name, value in changes.items():
            setattr(license, name, value)
        self.session.commit()
        return license

    @_persistence
    def all_licenses(self) -> List[License]:
        return self.session.query(License).order_by(License.created_at.desc(), License.id.desc()).all()

    @_persistence
    def count_licenses(self, status: Optional[str] = None) -> int:
        query = self.session.query(func.count(License.id))
        if status is not None:
            query = query.filter(License.status == status)
        return query.scalar()

    @_persistence
    def count_by_type(self) -> dict:
        rows = self.session.query(License.type, func.count(License.id)).group_by(License.type).all()
        return {license_type: count for license_type, count in rows}

    @_persistence
    def licenses_verified_since(self, since: datetime, limit: Optional[int] = None) -> List[License]:
        query = self.session.query(License).filter(License.last_verified_at >= since) \
            .order_by(License.last_verified_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    @_persistence
    def expired_but_active(self, now: datetime) -> List[License]:
        return self.session.query(License).filter(
            License.status == 'active',
            License.expires_at.isnot(None),
            License.expires_at < now,
        ).all()

    @_persistence
    def try_increment_activation_count(self, license_id: int, now: datetime) -> bool:
        """
        Atomically take one activation slot.

        Runs ``UPDATE ... WHERE activation_count < max_activations`` so that
        concurrent activations cannot push the counter past the limit. Does
        not commit; the caller commits together with the new activation row.

        Returns:
            True if a slot was taken
        """
        result = self.session.execute(
            update(License)
            .where(License.id == license_id, License.activation_count < License.max_activations)
            .values(activation_count=License.activation_count + 1, last_activated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---------------------------
    # Activations
    # ---------------------------
    @_persistence
    def activation_key_exists(self, activation_key: str) -> bool:
        return self.session.query(LicenseActivation.id) \
            .filter_by(activation_key=activation_key).first() is not None

    @_persistence
    def find_activation_by_key(self, activation_key: str) -> Optional[LicenseActivation]:
        return self.session.query(LicenseActivation).filter_by(activation_key=activation_key).first()

    @_persistence
    def find_activations_by_license(self, license_id: int, active_only: bool = False) -> List[LicenseActivation]:
        query = self.session.query(LicenseActivation).filter_by(license_id=license_id)
        if active_only:
            query = query.filter_by(is_active=True)
        return query.order_by(LicenseActivation.activated_at.desc()).all()

    @_persistence
    def count_active_activations(self, license_id: Optional[int] = None) -> int:
        query = self.session.query(func.count(LicenseActivation.id)).filter(LicenseActivation.is_active.is_(True))
        if license_id is not None:
            query = query.filter(LicenseActivation.license_id == license_id)
        return query.scalar()

    @_persistence
    def activations_since(self, since: datetime, limit: Optional[int] = None) -> List[LicenseActivation]:
        query = self.session.query(LicenseActivation).filter(LicenseActivation.activated_at >= since) \
            .order_by(LicenseActivation.activated_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    @_persistence
    def add_activation(self, activation: LicenseActivation) -> LicenseActivation:
        """Stage a new activation row. Does not commit."""
        self.session.add(activation)
        self.session.flush()
        return activation

    @_persistence
    def deactivate_activations(self, license_id: int, reason: str, now: datetime,
                               hardware_id: Optional[str] = None) -> int:
        """Soft-delete active activations of a license. Does not commit."""
        query = self.session.query(LicenseActivation).filter_by(license_id=license_id, is_active=True)
        if hardware_id is not None:
            query = query.filter_by(hardware_id=hardware_id)
        activations = query.all()
        for activation in activations:
            activation.is_active = False
            activation.deactivated_at = now
            activation.deactivation_reason = reason
        return len(activations)

    # ---------------------------
    # Payments
    # ---------------------------
    @_persistence
    def latest_payment(self, license_id: int) -> Optional[LicensePayment]:
        return self.session.query(LicensePayment).filter_by(license_id=license_id) \
            .order_by(LicensePayment.created_at.desc(), LicensePayment.id.desc()).first()

    # ---------------------------
    # Transactions
    # ---------------------------
    @_persistence
    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
