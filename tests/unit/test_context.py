"""
Unit tests for client session bookkeeping in the application context
"""
import pytest

from insitu.core.context import AppContext
from insitu.services.generation_orchestrator import GenerationState


@pytest.fixture
def context(test_settings, session_factory, mock_gateway):
    test_settings.max_sessions = 3
    test_settings.session_idle_timeout = 60
    return AppContext(test_settings, session_factory=session_factory, gateway=mock_gateway)


class TestSessionLifecycle:
    """Tests for session creation, lookup and eviction"""

    @pytest.mark.unit
    def test_unknown_id_gets_fresh_session(self, context):
        session = context.get_or_create_session("not-a-session")

        assert session.id != "not-a-session"
        assert context.get_session(session.id) is session

    @pytest.mark.unit
    def test_cap_evicts_least_recently_used(self, context, source_factory):
        first, second, third = (context.create_session() for _ in range(3))
        first.workspace.add_files([source_factory()])
        context.get_session(first.id)

        context.create_session()

        assert list(context.sessions)[0] == third.id
        assert second.id not in context.sessions
        assert first.id in context.sessions
        assert len(context.sessions) == 3

    @pytest.mark.unit
    def test_evicted_session_releases_uploads(self, context, source_factory):
        session = context.create_session()
        session.workspace.add_files([source_factory()])

        context.close_session(session.id)

        assert len(session.workspace.batch) == 0
        assert len(session.workspace.previews) == 0

    @pytest.mark.unit
    def test_idle_sessions_expire(self, context):
        stale = context.create_session()
        fresh = context.create_session()
        stale.last_seen -= 120

        assert context.evict_idle_sessions() == 1
        assert stale.id not in context.sessions
        assert fresh.id in context.sessions

    @pytest.mark.unit
    def test_lookup_of_idle_session_misses(self, context):
        session = context.create_session()
        session.last_seen -= 120

        assert context.get_session(session.id) is None
        assert session.id not in context.sessions

    @pytest.mark.unit
    def test_busy_session_is_never_evicted(self, context):
        busy = context.create_session()
        busy.workspace.state = GenerationState.AWAITING_RESULT
        busy.last_seen -= 120

        context.evict_idle_sessions()
        for _ in range(3):
            context.create_session()

        assert busy.id in context.sessions
