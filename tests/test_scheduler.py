"""Test WorkerScheduler job registration and error isolation."""
from unittest.mock import Mock

import pytest

from indexer.scheduler import WorkerScheduler


@pytest.fixture
def processors():
    return {
        'tiered_metrics': Mock(),
        'cache_warming': Mock(),
        'holder_update': Mock(),
        'ipfs_cache': Mock(),
    }


@pytest.fixture
def scheduler(processors):
    sched = WorkerScheduler(**processors)
    yield sched
    if sched.scheduler.running:
        sched.stop()


def test_all_jobs_registered(scheduler):
    jobs = {job['id']: job for job in scheduler.get_jobs()}
    assert set(jobs) == {'tiered_metrics', 'cache_warming', 'holder_update', 'ipfs_cache'}
    assert jobs['tiered_metrics']['name'] == 'Tiered Metrics Update'
    assert 'interval' in jobs['cache_warming']['trigger']
    assert 'cron' in jobs['holder_update']['trigger']


def test_custom_intervals(processors):
    sched = WorkerScheduler(**processors, tiered_interval_seconds=5, cache_warming_minutes=2)
    triggers = {job['id']: job['trigger'] for job in sched.get_jobs()}
    assert '0:00:05' in triggers['tiered_metrics']
    assert '0:02:00' in triggers['cache_warming']


def test_jobs_call_their_processors(scheduler, processors):
    scheduler._run_tiered_metrics()
    scheduler._run_cache_warming()
    scheduler._run_holder_update()
    scheduler._run_ipfs_cache()

    processors['tiered_metrics'].run.assert_called_once_with()
    processors['cache_warming'].run.assert_called_once_with()
    processors['holder_update'].run.assert_called_once_with(batch_update=True)
    processors['ipfs_cache'].run.assert_called_once_with(mode='all')


def test_job_failures_are_contained(scheduler, processors):
    for processor in processors.values():
        processor.run.side_effect = RuntimeError("boom")

    scheduler._run_tiered_metrics()
    scheduler._run_cache_warming()
    scheduler._run_holder_update()
    scheduler._run_ipfs_cache()


def test_start_and_stop(scheduler):
    scheduler.start()
    assert scheduler.scheduler.running
    assert all(job['next_run'] for job in scheduler.get_jobs())

    scheduler.stop()
    assert not scheduler.scheduler.running
