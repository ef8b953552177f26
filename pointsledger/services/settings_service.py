"""
Settings store for loyalty configuration.

Holds named string values such as points-per-completed-order. The store does
not interpret values; callers parse them (see get_int).
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LoyaltySetting, utc_now
from ..utils.exceptions import SettingNotFoundError, ValidationError
from ..utils.settings_defaults import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


class SettingsService:
    """
    Read and write loyalty settings.

    Usage:
        settings = SettingsService()
        settings.upsert('customer_points_per_order', '10', 'Points per order')
        points = settings.get_int('customer_points_per_order', default=10)
    """

    def get(self, key: str) -> str:
        """
        Get a setting value.

        Raises:
            SettingNotFoundError: If the key has never been stored
        """
        setting = LoyaltySetting.query.filter_by(key=key).first()
        if setting is None:
            raise SettingNotFoundError(key)
        return setting.value

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """
        Get a setting parsed as an integer.

        Falls back to `default` when the key is absent. Without a default the
        SettingNotFoundError propagates.

        Raises:
            SettingNotFoundError: Key absent and no default given
            ValidationError: Stored value is not an integer
        """
        try:
            raw = self.get(key)
        except SettingNotFoundError:
            if default is None:
                raise
            logger.info(f"Setting {key} not configured, using default {default}")
            return default

        try:
            return int(str(raw).strip())
        except ValueError:
            raise ValidationError(f"Setting '{key}' is not an integer: {raw!r}", field='value')

    def list_all(self) -> List[LoyaltySetting]:
        """All settings ordered by key."""
        return LoyaltySetting.query.order_by(LoyaltySetting.key).all()

    def upsert(self, key: str, value, description: str = None) -> LoyaltySetting:
        """
        Insert or update a setting.

        A None description keeps the stored one.

        Raises:
            ValidationError: Empty key or missing value
        """
        key = (key or '').strip()
        if not key:
            raise ValidationError("Setting key is required", field='key')
        if value is None:
            raise ValidationError("Setting value is required", field='value')

        setting = LoyaltySetting.query.filter_by(key=key).first()
        if setting is None:
            setting = LoyaltySetting(key=key, value=str(value), description=description)
            db.session.add(setting)
        else:
            setting.value = str(value)
            if description is not None:
                setting.description = description
            setting.updated_at = utc_now()

        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race inserting the same key; the other writer's row wins
            # and we apply our value on top of it.
            db.session.rollback()
            setting = LoyaltySetting.query.filter_by(key=key).one()
            setting.value = str(value)
            if description is not None:
                setting.description = description
            db.session.commit()

        logger.info(f"Setting {key} set to {setting.value}")
        return setting

    def seed_defaults(self) -> Dict[str, str]:
        """
        Store every default setting that is not configured yet.

        Returns:
            Dict of the keys that were inserted and their values
        """
        inserted = {}
        for key, (value, description) in DEFAULT_SETTINGS.items():
            if LoyaltySetting.query.filter_by(key=key).first() is None:
                db.session.add(LoyaltySetting(key=key, value=value, description=description))
                inserted[key] = value
        db.session.commit()
        return inserted
