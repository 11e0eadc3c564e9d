"""
Storage Provider Tests

Local filesystem confinement and the S3-compatible provider over a fake client.

To run these tests:
    pytest tests/test_storage.py -v
"""

import io
import os

import pytest

from app.errors import PathTraversal, StorageProviderError, ValidationError
from app.storage import (LocalStorageProvider, S3StorageProvider, get_storage_provider,
                         object_store_enabled, parse_object_locator)


@pytest.fixture
def local(tmp_path):
    return LocalStorageProvider(str(tmp_path / 'root'))


@pytest.fixture
def s3_settings():
    return {
        'provider': 's3',
        's3_access_key': 'key',
        's3_secret_key': 'secret',
        's3_bucket': 'videos',
        's3_region': 'eu-west-1',
        's3_endpoint': None,
    }


# =============================================================================
# LOCAL STORAGE
# =============================================================================


@pytest.mark.unit
def test_local_write_accepts_bytes_and_streams(local):
    local.write('a/b/one', b'bytes')
    local.write('a/b/two', io.BytesIO(b'stream'))

    with local.open('a/b/one') as f:
        assert f.read() == b'bytes'
    assert local.size('a/b/two') == 6
    assert sorted(os.listdir(local.resolve('a/b'))) == ['one', 'two']


@pytest.mark.unit
def test_local_write_stops_reading_past_the_limit(local):
    """
    Test a stream larger than the allowed size.

    Should:
    - Raise ValidationError before the whole stream is consumed
    - Leave neither the target nor a temp file behind
    """
    mb = 1024 * 1024
    stream = io.BytesIO(b'x' * (3 * mb))

    with pytest.raises(ValidationError):
        local.write('chunks/s/0', stream, max_bytes=mb)

    assert stream.tell() < 3 * mb
    assert not local.exists('chunks/s/0')
    assert os.listdir(local.resolve('chunks/s')) == []


@pytest.mark.unit
def test_local_write_within_limit(local):
    local.write('chunks/s/0', io.BytesIO(b'12345'), max_bytes=5)

    assert local.size('chunks/s/0') == 5


@pytest.mark.unit
@pytest.mark.parametrize('locator', ['../escape', 'chunks/../../escape', '/etc/passwd', ''])
def test_local_rejects_paths_outside_root(local, locator):
    with pytest.raises(PathTraversal) as exc_info:
        local.write(locator, b'x')

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == 'Invalid path'


@pytest.mark.unit
def test_local_rejects_symlink_escape(local, tmp_path):
    outside = tmp_path / 'outside'
    outside.mkdir()
    os.symlink(str(outside), os.path.join(local.root, 'link'))

    with pytest.raises(PathTraversal):
        local.resolve('link/file')


@pytest.mark.unit
def test_local_delete_missing_file_is_ignored(local):
    local.delete('never/written')
    assert not local.exists('never/written')


@pytest.mark.unit
def test_remove_empty_dir_keeps_non_empty_dirs(local):
    local.write('chunks/s1/0', b'x')

    local.remove_empty_dir('chunks/s1')
    assert local.exists('chunks/s1/0')

    local.delete('chunks/s1/0')
    local.remove_empty_dir('chunks/s1')
    assert not os.path.exists(local.resolve('chunks/s1'))


# =============================================================================
# PROVIDER SELECTION
# =============================================================================


@pytest.mark.unit
def test_object_store_requires_complete_credentials(s3_settings):
    assert object_store_enabled(s3_settings)
    assert not object_store_enabled({**s3_settings, 's3_secret_key': None})
    assert not object_store_enabled({**s3_settings, 'provider': 'local'})


@pytest.mark.unit
def test_incomplete_s3_settings_fall_back_to_local(app, s3_settings):
    provider = get_storage_provider({**s3_settings, 's3_bucket': ''})
    assert isinstance(provider, LocalStorageProvider)


@pytest.mark.unit
def test_parse_object_locator():
    assert parse_object_locator('s3://videos/7/a.mp4') == ('videos', '7/a.mp4')
    with pytest.raises(StorageProviderError):
        parse_object_locator('s3://videos')


# =============================================================================
# S3 STORAGE
# =============================================================================


@pytest.mark.unit
def test_s3_write_exists_delete(fake_s3, s3_settings):
    provider = S3StorageProvider(s3_settings)

    locator = provider.write('7/a.mp4', io.BytesIO(b'video'), 'video/mp4')

    assert locator == 's3://videos/7/a.mp4'
    assert provider.exists(locator)
    provider.delete(locator)
    assert not provider.exists(locator)


@pytest.mark.unit
def test_s3_rejects_locator_from_another_bucket(fake_s3, s3_settings):
    provider = S3StorageProvider(s3_settings)

    with pytest.raises(StorageProviderError, match='outside bucket'):
        provider.delete('s3://elsewhere/7/a.mp4')


@pytest.mark.unit
def test_s3_client_errors_become_storage_errors(fake_s3, s3_settings):
    provider = S3StorageProvider(s3_settings)
    fake_s3.fail('delete_object')

    with pytest.raises(StorageProviderError) as exc_info:
        provider.delete('7/a.mp4')

    assert exc_info.value.status_code == 502


@pytest.mark.unit
def test_s3_presigned_put_url(fake_s3, s3_settings):
    url = S3StorageProvider(s3_settings).presign_put('chunks/7/s/0', expires_in=600)

    assert url.startswith('https://videos.s3.test/chunks/7/s/0')
    assert 'X-Amz-Expires=600' in url


@pytest.mark.unit
def test_local_provider_has_no_direct_upload(local):
    assert not local.supports_direct_upload
    with pytest.raises(StorageProviderError, match='Direct upload not configured'):
        local.presign_put('chunks/1/s/0')
