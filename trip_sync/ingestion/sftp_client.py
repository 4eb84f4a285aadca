"""
SFTP client for downloading the daily trip export.
"""

import io
import socket
import logging
import posixpath
from datetime import datetime
from typing import List, Optional

import paramiko
import pytz

from trip_sync.config import SFTPSettings
from trip_sync.errors import TransportError
from trip_sync.ingestion.file_locator import RemoteFileDescriptor

logger = logging.getLogger(__name__)

KEY_TYPES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


def load_private_key(key_text: str) -> paramiko.PKey:
    """Load a PEM/OpenSSH private key of any supported type from text."""
    for key_type in KEY_TYPES:
        try:
            return key_type.from_private_key(io.StringIO(key_text))
        except (paramiko.SSHException, ValueError):
            continue
    raise TransportError("UBER_SFTP_PRIVATE_KEY is not a supported RSA, ECDSA or Ed25519 key")


class SFTPClient:
    """SFTP client scoped to one remote directory."""

    def __init__(self, settings: SFTPSettings):
        self.settings = settings
        self.transport: Optional[paramiko.Transport] = None
        self.sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> None:
        """Open an authenticated SFTP session."""
        pkey = load_private_key(self.settings.private_key)

        try:
            self.transport = paramiko.Transport((self.settings.host, self.settings.port))
            self.transport.connect(username=self.settings.username, pkey=pkey)
            self.sftp = paramiko.SFTPClient.from_transport(self.transport)
            logger.info(f"Connected to SFTP server: {self.settings.host}:{self.settings.port}")

        except (paramiko.SSHException, socket.error) as e:
            logger.error(f"Failed to connect to SFTP server: {e}")
            self.disconnect()
            raise TransportError(f"SFTP connection to {self.settings.host} failed: {e}") from e

    def disconnect(self) -> None:
        """Close the SFTP channel and the underlying transport."""
        try:
            if self.sftp:
                self.sftp.close()
            if self.transport:
                self.transport.close()
            logger.info("Disconnected from SFTP server")
        except Exception as e:
            logger.error(f"Error disconnecting from SFTP server: {e}")
        finally:
            self.sftp = None
            self.transport = None

    def _require_connection(self) -> paramiko.SFTPClient:
        if not self.sftp:
            raise RuntimeError("Not connected to SFTP server")
        return self.sftp

    def list_directory(self, path: Optional[str] = None) -> List[RemoteFileDescriptor]:
        """List the entries of the remote trips directory."""
        sftp = self._require_connection()
        path = path or self.settings.remote_path

        try:
            attributes = sftp.listdir_attr(path)
        except (IOError, paramiko.SSHException) as e:
            logger.error(f"Error listing {path}: {e}")
            raise TransportError(f"Could not list {path}: {e}") from e

        entries = [
            RemoteFileDescriptor(
                name=attr.filename,
                size_bytes=attr.st_size or 0,
                modified_at=datetime.fromtimestamp(attr.st_mtime or 0, tz=pytz.UTC),
            )
            for attr in attributes
        ]
        logger.info(f"Listed {len(entries)} entries in {path}")
        return entries

    def download(self, filename: str) -> bytes:
        """Download a whole file from the remote trips directory."""
        sftp = self._require_connection()
        remote_path = posixpath.join(self.settings.remote_path, filename)

        try:
            buffer = io.BytesIO()
            sftp.getfo(remote_path, buffer)
            content = buffer.getvalue()
        except (IOError, paramiko.SSHException) as e:
            logger.error(f"Error downloading {remote_path}: {e}")
            raise TransportError(f"Could not download {remote_path}: {e}") from e

        logger.info(f"Downloaded {remote_path} ({len(content)} bytes)")
        return content

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
