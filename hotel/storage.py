"""Filesystem-backed object storage for room images.

Objects live under ``STORAGE_ROOT/<bucket>/<key>`` and are served back by the
``api.storage_object`` route.
"""
import logging
import os
import time

from flask import current_app, url_for
from werkzeug.utils import secure_filename

from hotel.errors import StorageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}


class RoomImageStorage:

    def __init__(self, root, bucket):
        self.root = root
        self.bucket = bucket

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(app.config['STORAGE_ROOT'], app.config['ROOM_IMAGES_BUCKET'])

    @property
    def bucket_path(self):
        return os.path.join(self.root, self.bucket)

    def path_for(self, key):
        return os.path.join(self.bucket_path, secure_filename(key))

    def make_key(self, filename):
        name = secure_filename((filename or '').replace(' ', '_'))
        if not name:
            raise StorageError('Image file name is missing', status_code=400)
        ext = name.rsplit('.', 1)[-1].lower() if '.' in name else ''
        if ext not in IMAGE_EXTENSIONS:
            raise StorageError('Only image uploads are allowed', status_code=400)
        return f'{int(time.time() * 1000)}-{name}'

    def upload(self, file_storage):
        key = self.make_key(file_storage.filename)
        os.makedirs(self.bucket_path, exist_ok=True)
        try:
            file_storage.save(self.path_for(key))
        except OSError as exc:
            raise StorageError(f'Image upload failed: {exc}')
        logger.info('Stored %s/%s', self.bucket, key)
        return key

    def public_url(self, key):
        return url_for('api.storage_object', bucket=self.bucket, key=key, _external=True)

    def remove(self, keys):
        for key in keys:
            try:
                os.remove(self.path_for(key))
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageError(f'Could not delete {key}: {exc}')
            logger.info('Removed %s/%s', self.bucket, key)
