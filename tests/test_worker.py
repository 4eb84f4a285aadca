import signal
import logging
from datetime import date, datetime

import pytest
import pytz
import structlog

from tests.fakes import FakeFirestoreClient, FakeSession, FakeSFTPClient, make_config
from trip_sync.errors import ConfigurationError, DestinationError, FormatError, TransportError
from trip_sync.ingestion import worker as worker_module
from trip_sync.ingestion.transformer import DOCUMENT_SCHEMA, TABULAR_SCHEMA
from trip_sync.ingestion.worker import RunStatus, SyncWorker, reference_for_export_date
from trip_sync.sinks import FirestoreSink, SheetsSink
from trip_sync.tools.csv_generator import TripCSVGenerator

RUN_AT = datetime(2024, 1, 2, 8, 0)
EXPORT_NAME = 'daily_trips-2024_01_01.csv'
EXCLUDED = frozenset({'ADMINISTRATIVO', 'COMERCIAL'})


def export(group='OPERACIONAL') -> bytes:
    return '\n'.join([
        'Relatório gerado em 2024-01-01',
        'ID da viagem/Uber Eats;Nome;Sobrenome;Grupo',
        f'T1;Ana;Silva;{group}',
    ]).encode('utf-8')


def firestore_worker(client, firestore_client=None, **config_overrides):
    config = make_config(destination='firestore', excluded_groups=EXCLUDED, **config_overrides)
    firestore_client = firestore_client or FakeFirestoreClient()
    sink = FirestoreSink(config.firestore, DOCUMENT_SCHEMA, client=firestore_client)
    return SyncWorker(config, client_factory=lambda: client, sink=sink), firestore_client


def test_end_to_end_firestore_example():
    client = FakeSFTPClient({EXPORT_NAME: export()})
    worker, firestore_client = firestore_worker(client)

    result = worker.run_once(RUN_AT)

    assert result.status == RunStatus.DELIVERED
    assert result.filename == EXPORT_NAME
    assert result.records_parsed == 1
    assert result.records_delivered == 1
    documents = firestore_client.documents['trips']
    assert list(documents) == ['T1']
    assert documents['T1']['full_name'] == 'Ana Silva'
    assert client.disconnect_count == 1


def test_excluded_only_export_skips_delivery():
    client = FakeSFTPClient({EXPORT_NAME: export(group='ADMINISTRATIVO')})
    worker, firestore_client = firestore_worker(client)

    result = worker.run_once(RUN_AT)

    assert result.status == RunStatus.DELIVERED
    assert result.records_delivered == 0
    assert firestore_client.commit_sizes == []


def test_missing_export_is_a_clean_skip():
    client = FakeSFTPClient({'daily_trips-2023_12_31.csv': export()})
    worker, firestore_client = firestore_worker(client)

    result = worker.run_once(RUN_AT)

    assert result.status == RunStatus.NOT_FOUND
    assert result.filename == EXPORT_NAME
    assert client.downloads == []
    assert firestore_client.commit_sizes == []
    assert client.disconnect_count == 1


def test_rerun_is_idempotent_for_firestore():
    client = FakeSFTPClient({EXPORT_NAME: TripCSVGenerator(seed=7).generate_export(datetime(2024, 1, 1), 40)})
    worker, firestore_client = firestore_worker(client)

    worker.run_once(RUN_AT)
    first_state = {key: dict(doc) for key, doc in firestore_client.documents['trips'].items()}
    worker.run_once(RUN_AT)

    assert firestore_client.documents['trips'] == first_state
    assert all(doc['group'] not in EXCLUDED for doc in first_state.values())


def test_sheets_destination_ignores_group_exclusions():
    client = FakeSFTPClient({EXPORT_NAME: export(group='ADMINISTRATIVO')})
    config = make_config(excluded_groups=EXCLUDED)
    session = FakeSession()
    sink = SheetsSink(config.sheets, TABULAR_SCHEMA, session=session)
    worker = SyncWorker(config, client_factory=lambda: client, sink=sink)

    result = worker.run_once(RUN_AT)

    assert result.records_delivered == 1
    assert session.calls[0]['json']['values'][0][0] == 'T1'


def test_destination_failure_propagates_and_releases_session():
    client = FakeSFTPClient({EXPORT_NAME: export()})
    worker, _ = firestore_worker(client, firestore_client=FakeFirestoreClient(failing_commits={1}))

    with pytest.raises(DestinationError):
        worker.run_once(RUN_AT)

    assert client.disconnect_count == 1
    assert not client.connected


def test_download_failure_propagates_and_releases_session():
    client = FakeSFTPClient({EXPORT_NAME: export()}, fail_download=True)
    worker, _ = firestore_worker(client)

    with pytest.raises(TransportError):
        worker.run_once(RUN_AT)

    assert client.disconnect_count == 1


def test_malformed_export_fails_run():
    content = b'ID da viagem/Uber Eats;Nome\nT1;Ana;extra\n'
    client = FakeSFTPClient({EXPORT_NAME: content})
    worker, firestore_client = firestore_worker(client)

    with pytest.raises(FormatError):
        worker.run_once(RUN_AT)

    assert firestore_client.commit_sizes == []


def test_run_scheduled_turns_failures_into_results():
    client = FakeSFTPClient({EXPORT_NAME: export()}, fail_download=True)
    worker, _ = firestore_worker(client)

    result = worker.run_scheduled(RUN_AT)

    assert result.status == RunStatus.FAILED
    assert 'Could not download' in result.error

    # the worker stays usable for the next trigger
    client.fail_download = False
    assert worker.run_scheduled(RUN_AT).status == RunStatus.DELIVERED


def test_trigger_during_run_is_dropped():
    client = FakeSFTPClient({EXPORT_NAME: export()})
    worker, _ = firestore_worker(client)

    worker._run_lock.acquire()
    try:
        result = worker.run_once(RUN_AT)
    finally:
        worker._run_lock.release()

    assert result.status == RunStatus.SKIPPED_BUSY
    assert client.connect_count == 0


def test_next_run_time_uses_schedule_timezone():
    worker, _ = firestore_worker(FakeSFTPClient(), cron_schedule='0 8 * * *', timezone='America/Sao_Paulo')
    tz = pytz.timezone('America/Sao_Paulo')

    next_run = worker.next_run_time(tz.localize(datetime(2024, 1, 1, 9, 0)))

    assert next_run.astimezone(tz).replace(tzinfo=None) == datetime(2024, 1, 2, 8, 0)


def test_run_continuous_runs_on_start_and_stops(monkeypatch):
    worker, _ = firestore_worker(FakeSFTPClient(), run_on_start=True)
    calls = []

    def fake_run_scheduled(now=None):
        calls.append(now)
        worker.stop()

    monkeypatch.setattr(worker, '_install_signal_handlers', lambda: None)
    monkeypatch.setattr(worker, 'run_scheduled', fake_run_scheduled)

    worker.run_continuous()

    assert len(calls) == 1


def test_health_check():
    worker, _ = firestore_worker(FakeSFTPClient({EXPORT_NAME: export()}))
    assert worker.health_check() is True


def test_reference_for_export_date():
    assert reference_for_export_date(date(2024, 2, 29)) == datetime(2024, 3, 1, 0, 0)


def test_main_configuration_error_exits_non_zero(monkeypatch):
    def broken_config():
        raise ConfigurationError("UBER_SFTP_USERNAME and UBER_SFTP_PRIVATE_KEY are required")

    monkeypatch.setattr(worker_module.SyncLogger, 'setup_logging', staticmethod(lambda: None))
    monkeypatch.setattr(worker_module, 'load_config', broken_config)

    assert worker_module.main(['--once']) == 1


class StubWorker:
    outcome = None
    seen = []

    def __init__(self, config):
        self.config = config

    def run_once(self, now=None):
        StubWorker.seen.append(now)
        if isinstance(StubWorker.outcome, Exception):
            raise StubWorker.outcome
        return worker_module.RunResult(status=StubWorker.outcome)


@pytest.mark.parametrize('outcome, exit_code', [
    (RunStatus.DELIVERED, 0),
    (RunStatus.NOT_FOUND, 0),
    (TransportError('connection reset'), 1),
])
def test_main_once_exit_codes(monkeypatch, outcome, exit_code):
    monkeypatch.setattr(worker_module.SyncLogger, 'setup_logging', staticmethod(lambda: None))
    monkeypatch.setattr(worker_module, 'load_config', lambda: make_config())
    monkeypatch.setattr(worker_module, 'SyncWorker', StubWorker)
    monkeypatch.setattr(StubWorker, 'outcome', outcome)
    monkeypatch.setattr(StubWorker, 'seen', [])

    assert worker_module.main(['--once']) == exit_code


def test_main_export_date_sets_reference(monkeypatch):
    monkeypatch.setattr(worker_module.SyncLogger, 'setup_logging', staticmethod(lambda: None))
    monkeypatch.setattr(worker_module, 'load_config', lambda: make_config())
    monkeypatch.setattr(worker_module, 'SyncWorker', StubWorker)
    monkeypatch.setattr(StubWorker, 'outcome', RunStatus.DELIVERED)
    monkeypatch.setattr(StubWorker, 'seen', [])

    assert worker_module.main(['--export-date', '2024-01-01']) == 0
    assert StubWorker.seen == [datetime(2024, 1, 2, 0, 0)]


def test_stop_signals_end_the_scheduler_loop():
    worker, _ = firestore_worker(FakeSFTPClient())
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)}

    try:
        worker._install_signal_handlers()
        assert signal.getsignal(signal.SIGINT) == worker.stop
        signal.raise_signal(signal.SIGTERM)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    assert worker._stop_event.is_set()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_main_applies_logging_settings_from_dotenv(tmp_path, monkeypatch, restore_root_logger):
    log_file = tmp_path / 'logs' / 'sync.log'
    (tmp_path / '.env').write_text(f"LOG_LEVEL=WARNING\nLOG_FILE={log_file}\n", encoding='utf-8')
    for key in ('LOG_LEVEL', 'LOG_FORMAT', 'LOG_FILE'):
        # setenv first so the value loaded from .env is removed afterwards
        monkeypatch.setenv(key, '')
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(worker_module, 'load_config', lambda: make_config())
    monkeypatch.setattr(worker_module, 'SyncWorker', StubWorker)
    monkeypatch.setattr(StubWorker, 'outcome', RunStatus.DELIVERED)
    monkeypatch.setattr(StubWorker, 'seen', [])

    assert worker_module.main(['--once']) == 0
    assert logging.getLogger().level == logging.WARNING
    assert log_file.exists()
