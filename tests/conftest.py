"""
Upload Test Configuration and Fixtures

Fixtures shared by the upload, quota, storage and reaper tests.

To use pytest:
    pip install -e .[test]
    pytest tests/
"""

import boto3
import pytest
from botocore.exceptions import ClientError
from flask_jwt_extended import create_access_token

from app import create_app, db
from app.models import StorageConfig, User, UserRole
from app.services.cache_service import ConfigCache

MB = 1024 * 1024


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================

@pytest.fixture
def app(tmp_path):
    """
    Provide an application on in-memory SQLite with a temporary storage root.

    The app context stays pushed for the whole test.
    """
    app = create_app('testing', {'STORAGE_PATH': str(tmp_path / 'storage')})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage_root(app):
    return app.config['STORAGE_PATH']


# =============================================================================
# USER FIXTURES
# =============================================================================

def _create_user(email, role):
    user = User(email=email, username=email.split('@')[0], role=role)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def viewer_id(app):
    return _create_user('viewer@example.com', UserRole.VIEWER)


@pytest.fixture
def other_viewer_id(app):
    return _create_user('other@example.com', UserRole.VIEWER)


@pytest.fixture
def admin_id(app):
    return _create_user('admin@example.com', UserRole.ADMIN)


def auth_headers(user_id):
    token = create_access_token(identity=str(user_id))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def viewer_headers(viewer_id):
    return auth_headers(viewer_id)


@pytest.fixture
def admin_headers(admin_id):
    return auth_headers(admin_id)


# =============================================================================
# OBJECT STORAGE FIXTURES
# =============================================================================

class FakeS3Client:
    """
    In-memory stand-in for the boto3 S3 client.

    Only the calls the storage provider makes are implemented. Methods named
    in ``failing`` raise a ClientError, the way a real outage would surface.
    """

    def __init__(self):
        self.objects = {}
        self.multipart = {}
        self.aborted = []
        self.failing = set()
        self.calls = []

    def fail(self, *methods):
        self.failing.update(methods)

    def recover(self):
        self.failing.clear()

    def _call(self, method):
        self.calls.append(method)
        if method in self.failing:
            raise ClientError({'Error': {'Code': '503', 'Message': 'Service Unavailable'}}, method)

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self._call('upload_fileobj')
        self.objects[key] = fileobj.read()

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        self._call('upload_file')
        with open(filename, 'rb') as f:
            self.objects[key] = f.read()

    def generate_presigned_url(self, client_method, Params=None, ExpiresIn=3600, HttpMethod=None):
        self._call('generate_presigned_url')
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def delete_object(self, Bucket, Key):
        self._call('delete_object')
        self.objects.pop(Key, None)

    def head_object(self, Bucket, Key):
        self._call('head_object')
        if Key not in self.objects:
            raise ClientError({'Error': {'Code': '404', 'Message': 'Not Found'}}, 'HeadObject')
        return {'ContentLength': len(self.objects[Key])}

    def create_multipart_upload(self, Bucket, Key, ContentType=None):
        self._call('create_multipart_upload')
        upload_id = f'upload-{len(self.multipart) + 1}'
        self.multipart[upload_id] = {'key': Key, 'parts': {}}
        return {'UploadId': upload_id}

    def upload_part_copy(self, Bucket, Key, UploadId, PartNumber, CopySource):
        self._call('upload_part_copy')
        source = CopySource['Key']
        if source not in self.objects:
            raise ClientError({'Error': {'Code': 'NoSuchKey', 'Message': 'Missing'}}, 'UploadPartCopy')
        self.multipart[UploadId]['parts'][PartNumber] = self.objects[source]
        return {'CopyPartResult': {'ETag': f'"etag-{PartNumber}"'}}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._call('complete_multipart_upload')
        upload = self.multipart.pop(UploadId)
        parts = upload['parts']
        self.objects[Key] = b''.join(parts[part['PartNumber']] for part in MultipartUpload['Parts'])
        return {'Location': f'https://{Bucket}.s3.test/{Key}'}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._call('abort_multipart_upload')
        self.multipart.pop(UploadId, None)
        self.aborted.append(UploadId)


@pytest.fixture
def fake_s3(monkeypatch):
    """
    Patch boto3.client so every S3 provider talks to one in-memory fake.

    Usage:
        def test_something(s3_config, fake_s3):
            fake_s3.objects['key'] = b'data'
    """
    fake = FakeS3Client()
    monkeypatch.setattr(boto3, 'client', lambda *args, **kwargs: fake)
    return fake


@pytest.fixture
def s3_config(app, fake_s3):
    """Activate the object store in the storage configuration"""
    row = StorageConfig(provider='s3', s3_access_key='test-key', s3_secret_key='test-secret',
                        s3_bucket='videos', s3_region='us-east-1')
    db.session.add(row)
    db.session.commit()
    ConfigCache().invalidate()
    return ConfigCache().get_storage_config()
