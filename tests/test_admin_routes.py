"""
Admin Route Tests

Sweep trigger, reconciliation, cache, debug toggle, storage configuration
and per-user quota settings under /api/admin.

To run these tests:
    pytest tests/test_admin_routes.py -v
"""

import logging
from datetime import datetime, timedelta

import pytest

from app import db
from app.models import StorageConfig, UploadSession, UploadStatus, UserQuota
from app.services.cache_service import ConfigCache
from app.services.upload_manager import UploadSessionManager

MB = 1024 * 1024


# =============================================================================
# ACCESS
# =============================================================================


@pytest.mark.integration
@pytest.mark.parametrize('method,path', [
    ('post', '/api/admin/cleanup-expired-sessions'),
    ('get', '/api/admin/reconcile-storage'),
    ('post', '/api/admin/cache/clear'),
    ('get', '/api/admin/debug-status'),
    ('get', '/api/admin/storage-config'),
])
def test_admin_routes_reject_viewers(client, viewer_headers, method, path):
    response = getattr(client, method)(path, headers=viewer_headers)

    assert response.status_code == 403
    assert response.get_json() == {'error': 'Admin access required'}


# =============================================================================
# MAINTENANCE
# =============================================================================


@pytest.mark.integration
def test_cleanup_trigger_runs_sweep(client, admin_headers, viewer_id):
    session = UploadSessionManager().start(viewer_id, 'a.mp4', 100, 'video/mp4', 1)
    UploadSession.query.filter_by(id=session.id).update(
        {'expires_at': datetime.utcnow() - timedelta(minutes=1)})
    db.session.commit()

    response = client.post('/api/admin/cleanup-expired-sessions', headers=admin_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['expired_sessions'] == 1
    assert body['freed_bytes'] == 100
    assert UploadSession.query.get(session.id).status == UploadStatus.CANCELLED


@pytest.mark.integration
def test_reconcile_storage(client, admin_headers, viewer_id):
    UploadSessionManager().ledger.reserve(viewer_id, 999)

    response = client.get('/api/admin/reconcile-storage', headers=admin_headers)

    assert response.get_json() == {'success': True, 'reconciled': 1}
    assert UserQuota.query.filter_by(user_id=viewer_id).one().storage_used_bytes == 0


@pytest.mark.integration
def test_toggle_debug(client, admin_headers):
    assert client.get('/api/admin/debug-status', headers=admin_headers).get_json() == {'debugEnabled': False}

    response = client.post('/api/admin/toggle-debug', headers=admin_headers, json={'enabled': True})

    assert response.get_json() == {'success': True, 'debugEnabled': True}
    assert logging.getLogger('app').level == logging.DEBUG
    assert client.get('/api/admin/debug-status', headers=admin_headers).get_json() == {'debugEnabled': True}

    client.post('/api/admin/toggle-debug', headers=admin_headers, json={'enabled': False})
    assert logging.getLogger('app').level != logging.DEBUG


@pytest.mark.integration
def test_toggle_debug_requires_boolean(client, admin_headers):
    response = client.post('/api/admin/toggle-debug', headers=admin_headers, json={'enabled': 'yes'})

    assert response.status_code == 400


# =============================================================================
# STORAGE CONFIGURATION
# =============================================================================


@pytest.mark.integration
def test_storage_config_update_invalidates_cache(client, admin_headers):
    """
    Test updating the storage configuration.

    Should:
    - Create the configuration row on first update
    - Mask the secret key in the response
    - Make the new values visible to the next cached read
    """
    assert ConfigCache().get_storage_config()['max_file_size_bytes'] == 500 * MB

    response = client.put('/api/admin/storage-config', headers=admin_headers, json={
        'max_file_size_mb': 100,
        's3_secret_key': 'super-secret',
    })

    assert response.status_code == 200
    config = response.get_json()['config']
    assert config['max_file_size_mb'] == 100
    assert config['s3_secret_key'] == '********'
    assert StorageConfig.query.count() == 1
    assert ConfigCache().get_storage_config()['max_file_size_bytes'] == 100 * MB


@pytest.mark.integration
def test_storage_config_rejects_unknown_provider(client, admin_headers):
    response = client.put('/api/admin/storage-config', headers=admin_headers, json={'provider': 'ftp'})

    assert response.status_code == 400
    assert StorageConfig.query.count() == 0


@pytest.mark.integration
def test_cache_clear(client, admin_headers):
    ConfigCache().get_storage_config()
    db.session.add(StorageConfig(provider='local', max_file_size_mb=1))
    db.session.commit()

    assert client.post('/api/admin/cache/clear', headers=admin_headers).get_json() == {'success': True}
    assert ConfigCache().get_storage_config()['max_file_size_bytes'] == MB


# =============================================================================
# PER-USER SETTINGS
# =============================================================================


@pytest.mark.integration
def test_update_user_quota_limit(client, admin_headers, viewer_id):
    response = client.patch(f'/api/admin/users/{viewer_id}/quota', headers=admin_headers,
                            json={'storageLimitBytes': 2 * 1024 * MB})

    assert response.status_code == 200
    assert response.get_json()['quota']['storage_limit_bytes'] == 2 * 1024 * MB


@pytest.mark.integration
def test_update_user_quota_validation(client, admin_headers, viewer_id):
    response = client.patch(f'/api/admin/users/{viewer_id}/quota', headers=admin_headers,
                            json={'storageLimitBytes': -1})
    assert response.status_code == 400

    response = client.patch('/api/admin/users/9999/quota', headers=admin_headers,
                            json={'storageLimitBytes': 10})
    assert response.status_code == 404


@pytest.mark.integration
def test_update_user_expiration(client, admin_headers, viewer_id):
    response = client.patch(f'/api/admin/users/{viewer_id}/expiration', headers=admin_headers,
                            json={'videoExpirationDays': 0})

    assert response.status_code == 200
    assert response.get_json()['quota']['video_expiration_days'] == 0

    response = client.patch(f'/api/admin/users/{viewer_id}/expiration', headers=admin_headers,
                            json={'videoExpirationDays': None})
    assert response.get_json()['quota']['video_expiration_days'] is None
