import logging
from contextlib import contextmanager

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import StorageProviderError
from app.storage.base import StorageProvider, is_object_locator, object_locator, parse_object_locator

logger = logging.getLogger(__name__)


@contextmanager
def translate_errors(action):
    try:
        yield
    except (BotoCoreError, ClientError) as e:
        raise StorageProviderError(f'Object storage {action} failed: {e}') from e


class S3StorageProvider(StorageProvider):
    """S3-compatible object store configured from the storage configuration"""
    name = 's3'
    supports_direct_upload = True

    def __init__(self, settings):
        self.bucket = settings['s3_bucket']
        self.client = boto3.client(
            "s3",
            region_name=settings.get('s3_region') or "us-east-1",
            endpoint_url=settings.get('s3_endpoint') or None,
            aws_access_key_id=settings['s3_access_key'],
            aws_secret_access_key=settings['s3_secret_key'],
            config=boto3.session.Config(signature_version='s3v4')
        )

    def locator_for(self, key):
        return object_locator(self.bucket, key)

    def key_for(self, locator):
        """Accept either a bare key or an ``s3://`` locator in this bucket"""
        if not is_object_locator(locator):
            return locator
        bucket, key = parse_object_locator(locator)
        if bucket != self.bucket:
            raise StorageProviderError(f'Locator {locator} is outside bucket {self.bucket}')
        return key

    def write(self, locator, stream, content_type=None):
        key = self.key_for(locator)
        extra_args = {'ContentType': content_type} if content_type else None
        with translate_errors('write'):
            self.client.upload_fileobj(stream, self.bucket, key, ExtraArgs=extra_args)
        return self.locator_for(key)

    def upload_file(self, path, key, content_type=None):
        """Stream a local file up as a single object"""
        extra_args = {'ContentType': content_type} if content_type else None
        with translate_errors('upload'):
            self.client.upload_file(path, self.bucket, key, ExtraArgs=extra_args)
        return self.locator_for(key)

    def presign_put(self, key, expires_in=3600):
        with translate_errors('presign'):
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
                HttpMethod="PUT"
            )

    def delete(self, locator):
        key = self.key_for(locator)
        with translate_errors('delete'):
            self.client.delete_object(Bucket=self.bucket, Key=key)

    def exists(self, locator):
        key = self.key_for(locator)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageProviderError(f'Object storage lookup failed: {e}') from e
        except BotoCoreError as e:
            raise StorageProviderError(f'Object storage lookup failed: {e}') from e
        return True

    def begin_multipart(self, key, content_type=None):
        params = {'Bucket': self.bucket, 'Key': key}
        if content_type:
            params['ContentType'] = content_type
        with translate_errors('multipart start'):
            response = self.client.create_multipart_upload(**params)
        return response['UploadId']

    def copy_part(self, key, upload_id, part_number, source_locator):
        source_key = self.key_for(source_locator)
        with translate_errors(f'copy of part {part_number}'):
            response = self.client.upload_part_copy(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                CopySource={'Bucket': self.bucket, 'Key': source_key}
            )
        return {'PartNumber': part_number, 'ETag': response['CopyPartResult']['ETag']}

    def complete_multipart(self, key, upload_id, parts):
        sorted_parts = sorted(parts, key=lambda part: part['PartNumber'])
        with translate_errors('multipart completion'):
            self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": sorted_parts}
            )
        return self.locator_for(key)

    def abort_multipart(self, key, upload_id):
        with translate_errors('multipart abort'):
            self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
