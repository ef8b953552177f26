"""
Loyalty settings API endpoints.

Settings are plain key/value strings (e.g. customer_points_per_order).
"""
from flask import Blueprint, request, jsonify

from ..services import SettingsService
from ..utils.errors import bad_request, ErrorCode

settings_bp = Blueprint('settings', __name__)


@settings_bp.route('', methods=['GET'])
def list_settings():
    """All loyalty settings, ordered by key."""
    settings = SettingsService().list_all()
    return jsonify({'settings': [s.to_dict() for s in settings]})


@settings_bp.route('/<key>', methods=['GET'])
def get_setting(key):
    """Single setting value. 404 with SETTING_NOT_FOUND when absent."""
    return jsonify({'key': key, 'value': SettingsService().get(key)})


@settings_bp.route('/<key>', methods=['PUT'])
def put_setting(key):
    """
    Create or update a setting.

    JSON body:
        value: New value (required; stored as a string)
        description: Optional description (kept if omitted)
    """
    data = request.get_json(silent=True) or {}

    if 'value' not in data or data['value'] is None:
        return bad_request('value is required', ErrorCode.MISSING_FIELD)

    setting = SettingsService().upsert(key, data['value'], data.get('description'))
    return jsonify(setting.to_dict())
