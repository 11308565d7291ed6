"""Test IndexerService wiring, health reporting and the job executor."""
import threading

import pytest

from indexer.service.core import IndexerService
from indexer.service.models import BackfillRequest, CancelOutcome, JobKind, JobState
from storage.cache import CacheService
from conftest import TOKEN_A, TOKEN_B, FakeContracts, FakeIPFS, FakeRedis, FakeStore, make_token


def build_service(config, max_workers=2):
    return IndexerService(
        config,
        store=FakeStore(),
        cache=CacheService(FakeRedis()),
        contracts=FakeContracts(),
        ipfs=FakeIPFS(),
        max_workers=max_workers,
    )


@pytest.fixture
def service(config):
    svc = build_service(config)
    yield svc
    svc.shutdown()


def wait(service, job_id):
    service._job_futures[job_id].result(timeout=10)
    return service.get_job(job_id)


def test_rejects_store_without_repositories(config):
    with pytest.raises(TypeError):
        IndexerService(config, store=object(), cache=CacheService(None),
                       contracts=FakeContracts(), ipfs=FakeIPFS())


class TestHealth:

    def test_basic_health(self, service):
        report = service.health()
        assert report['status'] == 'healthy'
        assert report['environment'] == 'test'

    def test_all_dependencies_up(self, service):
        report = service.health_detailed()
        assert report['status'] == 'healthy'
        assert report['services']['database'] == {'status': 'up'}
        assert report['services']['redis']['status'] == 'up'
        assert report['services']['rpc'] == {'healthy': True, 'block_number': 100}
        assert report['services']['indexer']['is_running'] is False

    def test_database_down_is_unhealthy(self, service):
        service.store.healthy = False
        report = service.health_detailed()
        assert report['status'] == 'unhealthy'
        assert report['services']['database']['status'] == 'down'
        assert 'unreachable' in report['services']['database']['error']

    def test_missing_redis_is_degraded(self, config):
        svc = IndexerService(config, store=FakeStore(), cache=CacheService(None),
                             contracts=FakeContracts(), ipfs=FakeIPFS())
        try:
            assert svc.health_detailed()['status'] == 'degraded'
        finally:
            svc.shutdown()


class TestJobs:

    def test_sync_job_completes(self, service):
        service.contracts.all_tokens = [TOKEN_A]
        status = service.start_sync()
        assert status.kind == JobKind.SYNC

        finished = wait(service, status.job_id)

        assert finished.state == JobState.COMPLETED
        assert finished.result == {'synced': 1, 'skipped': 0, 'errors': 0}
        assert finished.started_at.tzinfo is not None
        assert service.list_jobs() == [finished]

    def test_backfill_job_reports_result(self, service):
        service.store.tokens.insert(make_token(TOKEN_A))
        service.store.tokens.insert(make_token(TOKEN_B))

        status = service.start_backfill(BackfillRequest(batch_size=1, concurrency=1))
        finished = wait(service, status.job_id)

        assert finished.state == JobState.COMPLETED
        assert finished.result['total'] == 2
        assert finished.result['success'] == 2
        assert finished.params['batch_size'] == 1

    def test_failed_job_records_error(self, service):
        service.contracts.fail_queries = True
        status = service.start_sync_holders(TOKEN_A.upper().replace('0X', '0x'))
        finished = wait(service, status.job_id)

        assert finished.state == JobState.FAILED
        assert 'eth_getLogs' in finished.error
        assert finished.params == {'token_address': TOKEN_A}

    def test_cancel_pending_job(self, config):
        svc = build_service(config, max_workers=1)
        release = threading.Event()

        def blocking_sync():
            release.wait(10)
            return {'synced': 0, 'skipped': 0, 'errors': 0}

        svc.sync_service.sync_all_tokens = blocking_sync
        try:
            first = svc.start_sync()
            second = svc.start_sync()

            assert svc.cancel_job(second.job_id) == CancelOutcome.CANCELLED
            assert svc.get_job(second.job_id).state == JobState.CANCELLED

            release.set()
            assert wait(svc, first.job_id).state == JobState.COMPLETED
            assert svc.cancel_job(first.job_id) == CancelOutcome.FINISHED
        finally:
            release.set()
            svc.shutdown()

    def test_cancel_unknown_job(self, service):
        assert service.cancel_job('missing') == CancelOutcome.NOT_FOUND
        assert service.get_job('missing') is None

    def test_running_sync_cannot_be_cancelled(self, service):
        started, release = threading.Event(), threading.Event()

        def blocking_sync():
            started.set()
            release.wait(10)
            return {'synced': 0, 'skipped': 0, 'errors': 0}

        service.sync_service.sync_all_tokens = blocking_sync
        status = service.start_sync()
        try:
            assert started.wait(10)
            assert service.cancel_job(status.job_id) == CancelOutcome.RUNNING
            assert service.get_job(status.job_id).state == JobState.RUNNING
        finally:
            release.set()
        assert wait(service, status.job_id).state == JobState.COMPLETED

    def test_running_backfill_is_stopped(self, service):
        service.store.tokens.insert(make_token(TOKEN_A))
        started, release = threading.Event(), threading.Event()
        update = service.metrics_service.update_token_metrics

        def blocking_update(address):
            started.set()
            release.wait(10)
            return update(address)

        service.metrics_service.update_token_metrics = blocking_update
        status = service.start_backfill(BackfillRequest(concurrency=1))
        try:
            assert started.wait(10)
            assert service.cancel_job(status.job_id) == CancelOutcome.CANCELLED
        finally:
            release.set()
        assert wait(service, status.job_id).state == JobState.CANCELLED

    def test_finished_jobs_are_pruned(self, service):
        service.max_finished_jobs = 2
        finished = []
        for _ in range(4):
            status = service.start_sync()
            wait(service, status.job_id)
            finished.append(status.job_id)

        kept = [job.job_id for job in service.list_jobs()]
        assert kept == finished[1:]
        assert service.get_job(finished[0]) is None


def test_worker_status(service):
    assert service.worker_status() == {'running': False, 'jobs': []}

    assert service.start_workers() is True
    status = service.worker_status()
    assert status['running'] is True
    assert {job['id'] for job in status['jobs']} == {
        'tiered_metrics', 'cache_warming', 'holder_update', 'ipfs_cache'}


def test_shutdown_closes_resources(config):
    svc = build_service(config)
    svc.shutdown()
    assert svc.store.closed is True
    assert svc.cache.redis.closed is True
