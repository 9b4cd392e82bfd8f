"""
Attachment blob store.

Files land in UPLOAD_FOLDER under a randomized name and are served back from
``/uploads/<name>``. The rest of the system only ever sees the
``{filename, url, type, size}`` record.
"""

import logging
import mimetypes
import os
import uuid

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .errors import ValidationError

logger = logging.getLogger(__name__)

IMAGE = 'image'
VIDEO = 'video'
AUDIO = 'audio'
PDF = 'pdf'
DOCUMENT = 'document'
ARCHIVE = 'archive'
TEXT = 'text'
OTHER = 'other'

ALLOWED_MIME_TYPES = frozenset({
    # Images
    'image/jpeg', 'image/png', 'image/gif', 'image/webp', 'image/svg+xml',
    # Documents
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'application/vnd.ms-powerpoint',
    'application/vnd.openxmlformats-officedocument.presentationml.presentation',
    # Text
    'text/plain', 'text/csv', 'text/html', 'text/markdown',
    # Archives
    'application/zip', 'application/x-rar-compressed', 'application/x-7z-compressed',
    # Code
    'application/json', 'application/javascript', 'text/javascript', 'application/xml',
    # Media
    'audio/mpeg', 'audio/wav', 'audio/ogg',
    'video/mp4', 'video/webm', 'video/ogg',
})

_DOCUMENT_MARKERS = ('document', 'word', 'excel', 'powerpoint', 'spreadsheet', 'presentation')
_ARCHIVE_MARKERS = ('zip', 'rar', '7z')
_TEXT_MARKERS = ('text', 'json', 'xml', 'javascript')


def categorize(mime_type) -> str:
    """Coarse category for a MIME string. Total: unknown input maps to 'other'."""
    mime = (mime_type or '').strip().lower()
    if mime.startswith('image/'):
        return IMAGE
    if mime.startswith('video/'):
        return VIDEO
    if mime.startswith('audio/'):
        return AUDIO
    if 'pdf' in mime:
        return PDF
    if any(marker in mime for marker in _DOCUMENT_MARKERS):
        return DOCUMENT
    if any(marker in mime for marker in _ARCHIVE_MARKERS):
        return ARCHIVE
    if any(marker in mime for marker in _TEXT_MARKERS):
        return TEXT
    return OTHER


class UploadStore:

    def __init__(self, folder, url_prefix='/uploads', max_size=10 * 1024 * 1024):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip('/')
        self.max_size = max_size
        os.makedirs(self.folder, exist_ok=True)

    def path_for(self, stored_name):
        return os.path.join(self.folder, stored_name)

    def save(self, file_storage) -> dict:
        """Validate and persist one uploaded file; returns its attachment record."""
        original = file_storage.filename or ''
        if not original:
            raise ValidationError('Uploaded file has no name')
        mime_type = self._mime_type(file_storage)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(f'File type not allowed: {mime_type}')

        stored_name = self._unique_name(original)
        path = self.path_for(stored_name)
        file_storage.save(path)
        try:
            size = os.path.getsize(path)
            if size > self.max_size:
                raise ValidationError(f'File too large: {original}')
            category = categorize(mime_type)
            if category == IMAGE and mime_type != 'image/svg+xml':
                self._verify_image(path, original)
        except ValidationError:
            self.remove(stored_name)
            raise
        logger.debug(f'Stored upload {original!r} as {stored_name} ({size} bytes)')
        return {
            'filename': original,
            'url': f'{self.url_prefix}/{stored_name}',
            'type': category,
            'size': size,
        }

    def remove(self, stored_name):
        """Best-effort delete; a missing file is not an error."""
        try:
            os.remove(self.path_for(stored_name))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f'Could not remove upload {stored_name}: {e}')

    def stored_name_of(self, url):
        prefix = self.url_prefix + '/'
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def discard_urls(self, urls):
        """Remove the files behind attachment URLs once their rows are gone."""
        for url in urls:
            stored_name = self.stored_name_of(url)
            if stored_name:
                self.remove(stored_name)

    @staticmethod
    def _mime_type(file_storage):
        mime = (file_storage.mimetype or '').lower()
        if not mime or mime == 'application/octet-stream':
            guessed, _ = mimetypes.guess_type(file_storage.filename or '')
            mime = (guessed or mime).lower()
        return mime

    @staticmethod
    def _unique_name(original):
        safe = secure_filename(original) or 'file'
        name, ext = os.path.splitext(safe)
        return f'{name}-{uuid.uuid4().hex}{ext}'

    @staticmethod
    def _verify_image(path, original):
        try:
            with Image.open(path) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValidationError(f'Invalid image file: {original}')
