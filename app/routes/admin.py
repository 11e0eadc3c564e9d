import logging

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from app import db
from app.errors import UploadError, ValidationError
from app.models import StorageConfig, User, PROVIDER_LOCAL, PROVIDER_S3
from app.services.cache_service import ConfigCache
from app.services.quota_ledger import QuotaLedger
from app.services.reaper import build_reaper
from app.utils import admin_required, get_runtime

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)


def _int_field(data, field, allow_none=False):
    value = data.get(field)
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f'{field} must be a non-negative integer')
    return value


def _get_user_or_404(user_id):
    user = User.query.get(user_id)
    if user is None:
        return None, (jsonify({'error': 'User not found'}), 404)
    return user, None


@admin_bp.route('/cleanup-expired-sessions', methods=['POST'])
@jwt_required()
@admin_required
def cleanup_expired_sessions():
    """Run the upload sweep now"""
    try:
        stats = build_reaper().sweep()
        return jsonify({'success': True, **stats}), 200

    except Exception:
        db.session.rollback()
        logger.exception("Manual upload sweep failed")
        return jsonify({'error': 'Internal server error'}), 500


@admin_bp.route('/reconcile-storage', methods=['GET'])
@jwt_required()
@admin_required
def reconcile_storage():
    try:
        reconciled = QuotaLedger().reconcile_all()
        return jsonify({'success': True, 'reconciled': reconciled}), 200

    except Exception:
        db.session.rollback()
        logger.exception("Storage reconciliation failed")
        return jsonify({'error': 'Internal server error'}), 500


@admin_bp.route('/cache/clear', methods=['POST'])
@jwt_required()
@admin_required
def clear_cache():
    ConfigCache().invalidate()
    logger.info("Configuration cache cleared")
    return jsonify({'success': True}), 200


@admin_bp.route('/debug-status', methods=['GET'])
@jwt_required()
@admin_required
def debug_status():
    return jsonify({'debugEnabled': get_runtime().debug_enabled}), 200


@admin_bp.route('/toggle-debug', methods=['POST'])
@jwt_required()
@admin_required
def toggle_debug():
    data = request.get_json(silent=True) or {}
    enabled = data.get('enabled')
    if not isinstance(enabled, bool):
        return jsonify({'error': 'enabled must be a boolean'}), 400

    get_runtime().set_debug(enabled)
    logger.info("Upload debug logging %s", 'enabled' if enabled else 'disabled')
    return jsonify({'success': True, 'debugEnabled': enabled}), 200


@admin_bp.route('/storage-config', methods=['GET'])
@jwt_required()
@admin_required
def get_storage_config():
    row = StorageConfig.get_active_config()
    if row is None:
        return jsonify({'config': None, 'effective': _public_settings(ConfigCache().get_storage_config())}), 200
    return jsonify({'config': row.to_dict(include_secrets=False)}), 200


def _public_settings(settings):
    data = dict(settings)
    if data.get('s3_secret_key'):
        data['s3_secret_key'] = '********'
    return data


@admin_bp.route('/storage-config', methods=['PUT'])
@jwt_required()
@admin_required
def update_storage_config():
    """Update the storage configuration and drop the cached copy"""
    try:
        data = request.get_json(silent=True) or {}

        if 'provider' in data and data['provider'] not in (PROVIDER_LOCAL, PROVIDER_S3):
            raise ValidationError(f"provider must be '{PROVIDER_LOCAL}' or '{PROVIDER_S3}'")
        for field in ('max_file_size_mb', 'default_storage_limit_mb', 'video_expiration_days'):
            if field in data:
                _int_field(data, field, allow_none=True)
        if 'allowed_types' in data and data['allowed_types'] is not None:
            types = data['allowed_types']
            if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
                raise ValidationError('allowed_types must be a list of strings')

        row = StorageConfig.get_active_config()
        if row is None:
            row = StorageConfig()
            db.session.add(row)
        changed = row.apply_updates(data)
        db.session.commit()

        ConfigCache().invalidate(ConfigCache.CONFIG_KEY)
        logger.info("Storage configuration updated: %s", ', '.join(changed) or 'no changes')
        return jsonify({'success': True, 'config': row.to_dict(include_secrets=False)}), 200

    except UploadError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        logger.exception("Storage configuration update failed")
        return jsonify({'error': 'Internal server error'}), 500


@admin_bp.route('/users/<int:user_id>/quota', methods=['PATCH'])
@jwt_required()
@admin_required
def update_user_quota(user_id):
    try:
        user, error = _get_user_or_404(user_id)
        if error:
            return error

        data = request.get_json(silent=True) or {}
        limit = _int_field(data, 'storageLimitBytes')
        quota = QuotaLedger().set_limit(user.id, limit)
        return jsonify({'success': True, 'quota': quota.to_dict()}), 200

    except UploadError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        logger.exception("Quota update for user %s failed", user_id)
        return jsonify({'error': 'Internal server error'}), 500


@admin_bp.route('/users/<int:user_id>/expiration', methods=['PATCH'])
@jwt_required()
@admin_required
def update_user_expiration(user_id):
    """Per-user video lifetime in days; null follows the global setting, 0 never expires"""
    try:
        user, error = _get_user_or_404(user_id)
        if error:
            return error

        data = request.get_json(silent=True) or {}
        if 'videoExpirationDays' not in data:
            raise ValidationError('videoExpirationDays is required')
        days = _int_field(data, 'videoExpirationDays', allow_none=True)
        quota = QuotaLedger().set_video_expiration_days(user.id, days)
        return jsonify({'success': True, 'quota': quota.to_dict()}), 200

    except UploadError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        logger.exception("Expiration update for user %s failed", user_id)
        return jsonify({'error': 'Internal server error'}), 500
