import logging

from flask import Blueprint, current_app, request, jsonify
from flask_jwt_extended import jwt_required
from werkzeug.exceptions import RequestEntityTooLarge

from app import db
from app.errors import UploadError, ValidationError
from app.services.upload_manager import build_upload_manager
from app.utils import current_user_id, debug_log

logger = logging.getLogger(__name__)

upload_bp = Blueprint('upload', __name__)


def _error_response(e):
    return jsonify(e.to_dict()), e.status_code


def _server_error(action):
    db.session.rollback()
    logger.exception("Upload %s failed", action)
    return jsonify({'error': 'Internal server error'}), 500


@upload_bp.route('/start', methods=['POST'])
@jwt_required()
def start_upload():
    """Open an upload session and reserve quota for the whole file"""
    try:
        data = request.get_json(silent=True) or {}
        session = build_upload_manager().start(
            owner_id=current_user_id(),
            filename=data.get('filename'),
            file_size=data.get('fileSize'),
            mimetype=data.get('mimetype'),
            total_chunks=data.get('totalChunks')
        )
        return jsonify({
            'sessionId': session.id,
            'shareId': session.share_id,
            'expiresAt': session.expires_at.isoformat()
        }), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('start')


@upload_bp.route('/chunk/<session_id>', methods=['POST'])
@jwt_required()
def upload_chunk(session_id):
    """Receive one chunk as multipart form data"""
    try:
        chunk_file = request.files.get('chunk')
        chunk_number = request.form.get('chunkNumber')
        if chunk_file is None:
            raise ValidationError('No chunk data provided')
        if chunk_number is None:
            raise ValidationError('Invalid chunk number')

        debug_log(logger, "Chunk %s received for session %s", chunk_number, session_id)

        session = build_upload_manager().upload_chunk(
            session_id, current_user_id(), chunk_number, chunk_file.stream)
        return jsonify({
            'success': True,
            'chunkNumber': int(chunk_number),
            'chunksUploaded': session.chunks_uploaded,
            'totalChunks': session.total_chunks
        }), 200

    except RequestEntityTooLarge:
        return jsonify({'error': f"Chunk too large. Maximum size: {current_app.config['MAX_CHUNK_SIZE_MB']}MB"}), 413
    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('chunk')


@upload_bp.route('/chunk-url/<session_id>/<chunk_number>', methods=['POST'])
@jwt_required()
def chunk_upload_url(session_id, chunk_number):
    """Presigned URL for sending a chunk straight to object storage"""
    try:
        url, key = build_upload_manager().presign_chunk(session_id, current_user_id(), chunk_number)
        return jsonify({'url': url, 'key': key}), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('chunk-url')


@upload_bp.route('/chunk-complete/<session_id>/<chunk_number>', methods=['POST'])
@jwt_required()
def chunk_complete(session_id, chunk_number):
    try:
        data = request.get_json(silent=True) or {}
        if not data.get('key'):
            raise ValidationError('Missing chunk key')

        session = build_upload_manager().complete_direct_chunk(
            session_id, current_user_id(), chunk_number, data.get('key'), data.get('size'))
        return jsonify({
            'success': True,
            'chunksUploaded': session.chunks_uploaded
        }), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('chunk-complete')


@upload_bp.route('/complete/<session_id>', methods=['POST'])
@jwt_required()
def complete_upload(session_id):
    """Assemble the chunks and publish the video"""
    try:
        session = build_upload_manager().finalize(session_id, current_user_id())
        return jsonify({
            'success': True,
            'videoId': session.video_id,
            'shareId': session.share_id
        }), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('complete')


@upload_bp.route('/cancel/<session_id>', methods=['DELETE'])
@jwt_required()
def cancel_upload(session_id):
    try:
        build_upload_manager().cancel(session_id, current_user_id())
        return jsonify({'success': True}), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('cancel')


@upload_bp.route('/status/<session_id>', methods=['GET'])
@jwt_required()
def upload_status(session_id):
    try:
        return jsonify(build_upload_manager().status(session_id, current_user_id())), 200

    except UploadError as e:
        return _error_response(e)
    except Exception:
        return _server_error('status')
