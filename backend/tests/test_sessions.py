from datetime import timedelta

from conftest import T0
from examhall.models.session import SessionPhase
from examhall.services.session_store import SessionKey
from examhall.services.sessions import ExamSessionService


def make_service(repository, store, clock):
    return ExamSessionService(repository, store, clock=clock)


async def test_completed_attempts_release_engine_and_lock(repository, store, clock):
    service = make_service(repository, store, clock)
    await service.start("assign-1", "s1")
    view = await service.submit("assign-1", "s1")
    assert view.snapshot.phase == SessionPhase.COMPLETED

    assert service.forget_completed() == 1
    assert service._engines == {}
    assert service._buses == {}
    assert service._locks == {}


async def test_attempts_idle_past_window_are_evicted(repository, store, clock):
    service = make_service(repository, store, clock)
    await service.start("assign-1", "s1")
    await service.select_answer("assign-1", "s1", "q1", "A")

    clock.advance(timedelta(days=2).total_seconds())
    assert service.forget_completed() == 1
    assert SessionKey("assign-1", "s1") not in service._locks
    # Stored state survives; the next start submits it.
    assert store.get_answers(SessionKey("assign-1", "s1")) == {"q1": "A"}

    view = await service.start("assign-1", "s1")
    assert view.snapshot.phase == SessionPhase.COMPLETED
    assert repository.submissions[0].correct_count == 1


async def test_running_attempts_are_kept(repository, store, clock):
    service = make_service(repository, store, clock)
    await service.start("assign-1", "s1")
    clock.advance(60)
    assert service.forget_completed() == 0
    view = await service.status("assign-1", "s1")
    assert view.snapshot.remaining_seconds == 30 * 60 - 60
    assert repository.submissions == []
    assert clock.now == T0 + timedelta(seconds=60)
