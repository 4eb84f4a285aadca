"""
Configuration loading for the trip sync worker.

All settings come from the environment (optionally seeded from a ``.env``
file) and are assembled once into a ``SyncConfig`` that is passed down to the
pipeline components.
"""

import os
import json
import time
import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional

import pytz
from croniter import croniter
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from trip_sync.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SHEETS_API_URL = 'https://sheetsapi-4glvqxtnkq-uc.a.run.app'
DEFAULT_CRON_SCHEDULE = '0 8 * * *'
DEFAULT_TIMEZONE = 'America/Sao_Paulo'

# Firestore rejects write batches with more than 500 operations
FIRESTORE_BATCH_LIMIT = 500

DESTINATIONS = ('sheets', 'firestore')


def normalize_private_key(value: str) -> str:
    """Turn escaped newlines from single-line env values into real ones."""
    return value.replace('\\n', '\n')


def parse_group_list(value: Optional[str]) -> FrozenSet[str]:
    """Parse a comma separated group list, ignoring blank entries."""
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(',') if item.strip())


class SFTPSettings(BaseModel):
    """Connection settings for the partner SFTP drop."""

    host: str = 'sftp.uber.com'
    port: int = 2222
    username: str
    private_key: str
    remote_path: str = '/from_uber/trips'

    @field_validator('username', 'private_key')
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError('value is required')
        return v

    @field_validator('private_key')
    @classmethod
    def validate_private_key(cls, v):
        return normalize_private_key(v)

    @field_validator('remote_path')
    @classmethod
    def validate_remote_path(cls, v):
        return v.rstrip('/') or '/'


class SheetsSettings(BaseModel):
    """Settings for the tabular push endpoint."""

    api_url: str = DEFAULT_SHEETS_API_URL
    timeout_seconds: Optional[float] = 60.0


class FirestoreSettings(BaseModel):
    """Settings for the Firestore document store."""

    service_account: Optional[Dict[str, Any]] = None
    collection: str = 'trips'
    batch_size: int = FIRESTORE_BATCH_LIMIT

    @field_validator('service_account')
    @classmethod
    def validate_service_account(cls, v):
        if v is None:
            return v
        if 'private_key' in v and isinstance(v['private_key'], str):
            v = dict(v, private_key=normalize_private_key(v['private_key']))
        return v

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v):
        if v <= 0 or v > FIRESTORE_BATCH_LIMIT:
            raise ValueError(f'batch size must be between 1 and {FIRESTORE_BATCH_LIMIT}')
        return v


class SyncConfig(BaseModel):
    """Process-wide configuration built once at startup."""

    destination: str = 'sheets'
    cron_schedule: str = DEFAULT_CRON_SCHEDULE
    run_on_start: bool = False
    timezone: str = DEFAULT_TIMEZONE
    excluded_groups: FrozenSet[str] = frozenset()
    sftp: SFTPSettings
    sheets: SheetsSettings = SheetsSettings()
    firestore: FirestoreSettings = FirestoreSettings()

    @field_validator('destination')
    @classmethod
    def validate_destination(cls, v):
        v = v.strip().lower()
        if v not in DESTINATIONS:
            raise ValueError(f"destination must be one of {', '.join(DESTINATIONS)}")
        return v

    @field_validator('cron_schedule')
    @classmethod
    def validate_cron_schedule(cls, v):
        if not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: '{v}'")
        return v

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"unknown timezone: '{v}'")
        return v

    @model_validator(mode='after')
    def validate_destination_credentials(self):
        if self.destination == 'firestore' and not self.firestore.service_account:
            raise ValueError('FIREBASE_SERVICE_ACCOUNT is required for the firestore destination')
        return self

    @property
    def tz(self):
        """The schedule timezone as a pytz timezone."""
        return pytz.timezone(self.timezone)


def load_environment() -> None:
    """Load `.env` from the working directory into the process environment.

    Variables already set in the environment win over the file. A `TZ`
    taken from the file only reaches the local clock after `time.tzset()`.
    """
    load_dotenv(find_dotenv(usecwd=True))
    if hasattr(time, 'tzset'):
        time.tzset()


def load_config(env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """Build the configuration from the environment."""
    if env is None:
        load_environment()
        env = os.environ

    username = env.get('UBER_SFTP_USERNAME', '')
    private_key = env.get('UBER_SFTP_PRIVATE_KEY', '')
    if not username or not private_key:
        raise ConfigurationError("UBER_SFTP_USERNAME and UBER_SFTP_PRIVATE_KEY are required")

    service_account = None
    raw_service_account = env.get('FIREBASE_SERVICE_ACCOUNT')
    if raw_service_account:
        try:
            service_account = json.loads(raw_service_account)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"FIREBASE_SERVICE_ACCOUNT is not valid JSON: {e}") from e

    sftp_settings = {
        'username': username,
        'private_key': private_key,
    }
    if env.get('UBER_SFTP_HOST'):
        sftp_settings['host'] = env['UBER_SFTP_HOST']
    if env.get('UBER_SFTP_PORT'):
        sftp_settings['port'] = env['UBER_SFTP_PORT']
    if env.get('UBER_SFTP_REMOTE_PATH'):
        sftp_settings['remote_path'] = env['UBER_SFTP_REMOTE_PATH']

    sheets_settings = {'api_url': env.get('SHEETS_API_URL') or DEFAULT_SHEETS_API_URL}
    if env.get('SHEETS_TIMEOUT_SECONDS'):
        sheets_settings['timeout_seconds'] = env['SHEETS_TIMEOUT_SECONDS']

    firestore_settings = {
        'service_account': service_account,
        'collection': env.get('FIRESTORE_COLLECTION') or 'trips',
    }
    if env.get('FIRESTORE_BATCH_SIZE'):
        firestore_settings['batch_size'] = env['FIRESTORE_BATCH_SIZE']

    try:
        config = SyncConfig(
            destination=env.get('SYNC_DESTINATION') or 'sheets',
            cron_schedule=env.get('CRON_SCHEDULE') or DEFAULT_CRON_SCHEDULE,
            run_on_start=env.get('RUN_ON_START', '').lower() == 'true',
            timezone=env.get('TZ') or DEFAULT_TIMEZONE,
            excluded_groups=parse_group_list(env.get('EXCLUDED_GROUPS')),
            sftp=SFTPSettings(**sftp_settings),
            sheets=SheetsSettings(**sheets_settings),
            firestore=FirestoreSettings(**firestore_settings),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.info(
        f"Configuration loaded: destination={config.destination}, "
        f"schedule='{config.cron_schedule}', timezone={config.timezone}"
    )
    return config
