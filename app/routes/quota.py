import logging

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from app import db
from app.errors import UploadError
from app.services.quota_ledger import QuotaLedger
from app.utils import current_user_id

logger = logging.getLogger(__name__)

quota_bp = Blueprint('quota', __name__)


@quota_bp.route('/user-quota', methods=['GET'])
@jwt_required()
def get_user_quota():
    """Reconciled storage usage for the current user"""
    try:
        quota = QuotaLedger().get_quota(current_user_id())
        return jsonify({'quota': {
            'storage_used_bytes': int(quota.storage_used_bytes or 0),
            'storage_limit_bytes': int(quota.storage_limit_bytes or 0),
            'upload_count': int(quota.upload_count or 0)
        }}), 200

    except UploadError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        logger.exception("Quota lookup failed")
        return jsonify({'error': 'Internal server error'}), 500
