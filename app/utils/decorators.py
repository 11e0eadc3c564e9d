import logging
from functools import wraps

from flask import jsonify
from flask_jwt_extended import get_jwt_identity

from app.models import User

logger = logging.getLogger(__name__)


def current_user_id():
    """Owner id carried in the JWT identity"""
    return int(get_jwt_identity())


def admin_required(fn):
    """
    Decorator to require admin role for accessing protected endpoints.
    This decorator should be used after @jwt_required() decorator.

    Usage:
        @admin_bp.route('/admin-only')
        @jwt_required()
        @admin_required
        def admin_only_endpoint():
            return jsonify({'message': 'Admin access granted'})
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        from app.services.cache_service import ConfigCache

        try:
            user_id = current_user_id()
        except (TypeError, ValueError):
            return jsonify({'error': 'Invalid token identity'}), 401

        try:
            if User.query.get(user_id) is None:
                return jsonify({'error': 'User not found'}), 404

            if not ConfigCache().is_privileged(user_id):
                return jsonify({'error': 'Admin access required'}), 403
        except Exception:
            logger.exception("Role lookup failed for user %s", user_id)
            return jsonify({'error': 'Internal server error'}), 500

        return fn(*args, **kwargs)

    return wrapper
