from datetime import datetime

import pytz

from tests.fakes import FakeSFTPClient
from trip_sync.ingestion.file_locator import FileLocator, yesterday_filename


def test_yesterday_filename_pads_month_and_day():
    assert yesterday_filename(datetime(2024, 2, 10, 8, 0)) == 'daily_trips-2024_02_09.csv'


def test_yesterday_filename_crosses_month_and_year():
    assert yesterday_filename(datetime(2024, 3, 1, 0, 30)) == 'daily_trips-2024_02_29.csv'
    assert yesterday_filename(datetime(2025, 1, 1, 8, 0)) == 'daily_trips-2024_12_31.csv'


def test_yesterday_uses_reference_calendar_without_timezone_conversion():
    # 01:00 UTC on Jan 2nd is still Jan 1st in Sao Paulo, but the reference's
    # own calendar fields decide the day.
    reference = pytz.UTC.localize(datetime(2024, 1, 2, 1, 0))
    assert yesterday_filename(reference) == 'daily_trips-2024_01_01.csv'

    sao_paulo = reference.astimezone(pytz.timezone('America/Sao_Paulo'))
    assert yesterday_filename(sao_paulo) == 'daily_trips-2023_12_31.csv'


def test_locate_returns_exact_match():
    client = FakeSFTPClient({
        'daily_trips-2024_01_01.csv': b'content',
        'daily_trips-2023_12_31.csv': b'older',
    })

    descriptor = FileLocator(client).locate(datetime(2024, 1, 2, 8, 0))

    assert descriptor.name == 'daily_trips-2024_01_01.csv'
    assert descriptor.size_bytes == len(b'content')


def test_locate_is_case_sensitive():
    client = FakeSFTPClient({'DAILY_TRIPS-2024_01_01.csv': b'content'})
    assert FileLocator(client).locate(datetime(2024, 1, 2, 8, 0)) is None


def test_locate_missing_file_returns_none():
    client = FakeSFTPClient({'daily_trips-2023_12_30.csv': b'content'})
    assert FileLocator(client).locate(datetime(2024, 1, 2, 8, 0)) is None
