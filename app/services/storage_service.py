"""Storage service for ticket attachments - S3 or local filesystem."""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from flask import current_app, url_for
from werkzeug.utils import secure_filename

from app.errors import ValidationError


@dataclass
class S3Config:
    """S3 configuration."""
    endpoint: str
    access_key: str
    secret_key: str
    bucket: str
    public_url: str = ''
    enabled: bool = False


class StorageBackend(ABC):
    """Abstract storage backend interface."""

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> str:
        """Upload file, return public URL."""
        pass

    @abstractmethod
    def download(self, key: str) -> Optional[bytes]:
        """Download file content. Returns None if not found."""
        pass


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Files are served back through the tickets blueprint.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get full path for key, refusing keys that leave base_path."""
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValidationError('Invalid attachment key')
        return path

    def upload(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> str:
        """Write file to local filesystem."""
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return url_for('tickets.get_attachment', key=key)

    def download(self, key: str) -> Optional[bytes]:
        """Read file from local filesystem."""
        path = self._get_path(key)
        if path.exists():
            return path.read_bytes()
        return None


class S3Storage(StorageBackend):
    """S3-compatible storage backend (AWS S3, MinIO, Hetzner Object Storage)."""

    def __init__(self, config: S3Config):
        self.config = config
        self.client = boto3.client(
            's3',
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
        )
        self.bucket = config.bucket

    def upload(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> str:
        """Upload file to S3."""
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type
        )
        base = self.config.public_url or f"{self.config.endpoint.rstrip('/')}/{self.bucket}"
        return f"{base.rstrip('/')}/{key}"

    def download(self, key: str) -> Optional[bytes]:
        """Download file from S3."""
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            if e.response['Error']['Code'] == 'NoSuchKey':
                return None
            raise


class StorageService:
    """
    Storage service with automatic backend selection.

    Uses S3 if STORAGE_BACKEND is 's3' and credentials are configured,
    otherwise falls back to the local filesystem.
    """

    def __init__(self):
        self._backend: Optional[StorageBackend] = None

    def _load_config(self) -> S3Config:
        """Load S3 config from the Flask config."""
        cfg = current_app.config
        return S3Config(
            endpoint=cfg.get('S3_ENDPOINT', ''),
            access_key=cfg.get('S3_ACCESS_KEY', ''),
            secret_key=cfg.get('S3_SECRET_KEY', ''),
            bucket=cfg.get('S3_BUCKET', 'ticket-attachments'),
            public_url=cfg.get('S3_PUBLIC_URL', ''),
            enabled=cfg.get('STORAGE_BACKEND', 'local') == 's3'
        )

    def _get_backend(self) -> StorageBackend:
        """Get or create storage backend."""
        if self._backend is None:
            config = self._load_config()

            if config.enabled and config.endpoint and config.access_key:
                try:
                    self._backend = S3Storage(config)
                    # Test connection
                    self._backend.client.head_bucket(Bucket=config.bucket)
                except Exception as e:
                    current_app.logger.warning(f"S3 connection failed, falling back to local: {e}")
                    self._backend = self._get_local_backend()
            else:
                self._backend = self._get_local_backend()

        return self._backend

    def _get_local_backend(self) -> LocalStorage:
        """Get local storage backend."""
        return LocalStorage(Path(current_app.config['STORAGE_DIR']))

    @property
    def is_s3(self) -> bool:
        """Check if using S3 backend."""
        return isinstance(self._get_backend(), S3Storage)

    def upload(self, key: str, data: bytes, content_type: str = 'application/octet-stream') -> str:
        """Upload file."""
        return self._get_backend().upload(key, data, content_type)

    def download(self, key: str) -> Optional[bytes]:
        """Download file content."""
        return self._get_backend().download(key)

    def get_attachment_key(self, ticket_id: int, filename: str) -> str:
        """Get storage key for a ticket attachment."""
        timestamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')
        return f"tickets/{ticket_id}/{timestamp}_{uuid.uuid4().hex[:8]}_{filename}"

    def upload_attachment(self, ticket_id: int, file) -> str:
        """
        Validate and store an uploaded attachment.

        Args:
            ticket_id: Ticket the file belongs to
            file: werkzeug FileStorage from request.files

        Returns:
            Public URL of the stored file

        Raises:
            ValidationError: Missing file, bad extension or file too large
        """
        if file is None or not file.filename:
            raise ValidationError('No file in request')

        filename = secure_filename(file.filename)
        extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
        allowed = current_app.config.get('ALLOWED_ATTACHMENT_EXTENSIONS', set())
        if extension not in allowed:
            raise ValidationError(f'File type not allowed: .{extension}')

        data = file.read()
        max_size = current_app.config.get('MAX_ATTACHMENT_SIZE', 5 * 1024 * 1024)
        if len(data) > max_size:
            raise ValidationError(f'File too large (max {max_size // (1024 * 1024)} MB)')

        key = self.get_attachment_key(ticket_id, filename)
        content_type = file.mimetype or 'application/octet-stream'
        return self.upload(key, data, content_type)
