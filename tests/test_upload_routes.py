"""
Upload Route Tests

The JSON contract of /api/upload/* and /api/user-quota as a browser
client sees it.

To run these tests:
    pytest tests/test_upload_routes.py -v
"""

import io
import os

import pytest

from app import db
from app.models import Video
from tests.conftest import auth_headers

MB = 1024 * 1024


def _start(client, headers, file_size=6, total_chunks=2, mimetype='video/mp4'):
    return client.post('/api/upload/start', headers=headers, json={
        'filename': 'trip.mp4',
        'fileSize': file_size,
        'mimetype': mimetype,
        'totalChunks': total_chunks,
    })


def _send_chunk(client, headers, session_id, chunk_number, payload):
    return client.post(f'/api/upload/chunk/{session_id}', headers=headers,
                       data={'chunk': (io.BytesIO(payload), 'blob'), 'chunkNumber': str(chunk_number)},
                       content_type='multipart/form-data')


# =============================================================================
# HAPPY PATH
# =============================================================================


@pytest.mark.integration
def test_full_upload_through_routes(client, viewer_headers):
    """
    Test start, two chunks, status, complete and the quota read.

    Should:
    - Answer each step with the documented fields
    - Report the reserved bytes as used afterwards
    """
    response = _start(client, viewer_headers)
    assert response.status_code == 200
    started = response.get_json()
    assert set(started) == {'sessionId', 'shareId', 'expiresAt'}
    session_id = started['sessionId']

    response = _send_chunk(client, viewer_headers, session_id, 1, b'def')
    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'chunkNumber': 1, 'chunksUploaded': 1, 'totalChunks': 2}
    _send_chunk(client, viewer_headers, session_id, 0, b'abc')

    status = client.get(f'/api/upload/status/{session_id}', headers=viewer_headers).get_json()
    assert status['status'] == 'uploading'
    assert status['chunks_uploaded'] == 2

    response = client.post(f'/api/upload/complete/{session_id}', headers=viewer_headers)
    assert response.status_code == 200
    completed = response.get_json()
    assert completed['success'] is True
    assert completed['shareId'] == started['shareId']
    assert Video.query.get(completed['videoId']).size == 6

    quota = client.get('/api/user-quota', headers=viewer_headers).get_json()['quota']
    assert quota == {'storage_used_bytes': 6, 'storage_limit_bytes': 512 * MB, 'upload_count': 1}


@pytest.mark.integration
def test_cancel_route_releases_quota(client, viewer_headers):
    session_id = _start(client, viewer_headers).get_json()['sessionId']

    response = client.delete(f'/api/upload/cancel/{session_id}', headers=viewer_headers)

    assert response.status_code == 200
    assert response.get_json() == {'success': True}
    quota = client.get('/api/user-quota', headers=viewer_headers).get_json()['quota']
    assert quota['storage_used_bytes'] == 0


@pytest.mark.integration
def test_direct_upload_routes(client, viewer_headers, s3_config, fake_s3):
    session_id = _start(client, viewer_headers, file_size=3, total_chunks=1).get_json()['sessionId']

    response = client.post(f'/api/upload/chunk-url/{session_id}/0', headers=viewer_headers)
    assert response.status_code == 200
    presigned = response.get_json()
    fake_s3.objects[presigned['key']] = b'abc'

    response = client.post(f'/api/upload/chunk-complete/{session_id}/0', headers=viewer_headers,
                           json={'key': presigned['key'], 'size': 3})
    assert response.get_json() == {'success': True, 'chunksUploaded': 1}

    response = client.post(f'/api/upload/complete/{session_id}', headers=viewer_headers)
    assert response.status_code == 200


# =============================================================================
# ERRORS
# =============================================================================


@pytest.mark.integration
def test_start_over_quota_returns_remaining_space(client, viewer_id, viewer_headers):
    db.session.add(Video(title='old', storage_path='old.mp4', user_id=viewer_id,
                         share_id='old-share', size=20 * MB))
    db.session.commit()

    response = _start(client, viewer_headers, file_size=524288000, total_chunks=100)

    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'Storage quota exceeded'
    assert body['currentUsed'] == 20 * MB
    assert body['storageLimit'] == 512 * MB
    assert body['remaining'] == 492 * MB


@pytest.mark.integration
def test_start_with_disallowed_type(client, viewer_headers):
    response = _start(client, viewer_headers, mimetype='image/png')

    assert response.status_code == 400
    assert response.get_json()['error'].startswith('File type not allowed')


@pytest.mark.integration
def test_complete_with_missing_chunks_is_rejected(client, viewer_headers):
    session_id = _start(client, viewer_headers).get_json()['sessionId']
    _send_chunk(client, viewer_headers, session_id, 0, b'abc')

    response = client.post(f'/api/upload/complete/{session_id}', headers=viewer_headers)

    assert response.status_code == 400
    assert response.get_json() == {'error': 'Not all chunks uploaded', 'chunksUploaded': 1, 'totalChunks': 2}


@pytest.mark.integration
def test_chunk_without_payload(client, viewer_headers):
    session_id = _start(client, viewer_headers).get_json()['sessionId']

    response = client.post(f'/api/upload/chunk/{session_id}', headers=viewer_headers,
                           data={'chunkNumber': '0'}, content_type='multipart/form-data')

    assert response.status_code == 400
    assert response.get_json() == {'error': 'No chunk data provided'}


@pytest.mark.integration
def test_oversized_chunk_request_is_refused(app, client, viewer_headers, storage_root):
    session_id = _start(client, viewer_headers).get_json()['sessionId']
    app.config['MAX_CONTENT_LENGTH'] = 512

    response = _send_chunk(client, viewer_headers, session_id, 0, b'x' * 4096)

    assert response.status_code == 413
    assert response.get_json()['error'].startswith('Chunk too large')
    assert not os.path.exists(os.path.join(storage_root, 'chunks', session_id))


@pytest.mark.integration
def test_other_users_session_is_forbidden(client, viewer_headers, other_viewer_id):
    session_id = _start(client, viewer_headers).get_json()['sessionId']

    response = client.get(f'/api/upload/status/{session_id}', headers=auth_headers(other_viewer_id))

    assert response.status_code == 403
    assert response.get_json() == {'error': 'Unauthorized'}


@pytest.mark.integration
def test_unknown_session_is_not_found(client, viewer_headers):
    response = client.delete('/api/upload/cancel/does-not-exist', headers=viewer_headers)

    assert response.status_code == 404
    assert response.get_json() == {'error': 'Upload session not found'}


@pytest.mark.integration
def test_chunk_url_without_object_storage(client, viewer_headers):
    session_id = _start(client, viewer_headers).get_json()['sessionId']

    response = client.post(f'/api/upload/chunk-url/{session_id}/0', headers=viewer_headers)

    assert response.status_code == 400
    assert response.get_json() == {'error': 'Direct upload not configured'}


@pytest.mark.integration
def test_routes_require_a_token(client):
    response = client.post('/api/upload/start', json={})
    assert response.status_code == 401
