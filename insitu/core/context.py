"""
Application context: shared services plus the per-client sessions that each
own an auth session, a navigation router and a generation workspace.
"""
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from insitu.core.config import Settings, settings as default_settings
from insitu.core.database import create_engine_and_sessionmaker, create_tables
from insitu.navigation.location import MemoryLocation
from insitu.navigation.router import Router
from insitu.navigation.routes import DEFAULT_ROUTES, Route
from insitu.services.auth_service import AuthService
from insitu.services.auth_session import AuthSession
from insitu.services.database_service import DatabaseService
from insitu.services.file_storage import FileStorageService
from insitu.services.gemini_service import GeminiImageService
from insitu.services.generation_orchestrator import GenerationOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class ClientSession:
    id: str
    auth: AuthSession
    router: Router
    workspace: GenerationOrchestrator
    last_seen: float = field(default_factory=time.monotonic)
    _unsubscribers: List = field(default_factory=list, repr=False)

    def touch(self):
        self.last_seen = time.monotonic()

    def idle_for(self, now: float) -> float:
        return now - self.last_seen

    def close(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.router.close()
        self.workspace.close()


class AppContext:
    """Everything the HTTP layer needs, built once per application"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker] = None,
        gateway: Optional[GeminiImageService] = None,
        file_storage: Optional[FileStorageService] = None,
        routes: Optional[List[Route]] = None,
    ):
        self.settings = settings or default_settings
        if session_factory is None:
            engine, session_factory = create_engine_and_sessionmaker(
                self.settings.database_url,
                echo=self.settings.debug,
                pool_size=self.settings.database_pool_size,
                max_overflow=self.settings.database_max_overflow,
            )
        self.engine = engine
        self.session_factory = session_factory

        self.gateway = gateway or GeminiImageService(self.settings)
        self.database_service = DatabaseService(self.settings)
        self.file_storage = file_storage or FileStorageService(self.settings)
        self.auth_service = AuthService(self.settings)
        self.routes = list(routes or DEFAULT_ROUTES)
        # Least recently used first
        self.sessions: "OrderedDict[str, ClientSession]" = OrderedDict()

    async def startup(self):
        if self.engine is not None:
            await create_tables(self.engine)
        logger.info("Application context started")

    async def shutdown(self):
        for session_id in list(self.sessions):
            self.close_session(session_id)
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("Application context stopped")

    def create_session(self, session_id: Optional[str] = None) -> ClientSession:
        self.evict_idle_sessions()
        self._enforce_session_cap()

        session_id = session_id or uuid.uuid4().hex
        auth = AuthSession(self.auth_service, self.database_service, self.session_factory, self.settings)
        router = Router(lambda: auth.identity, self.routes, MemoryLocation())
        workspace = GenerationOrchestrator(
            gateway=self.gateway,
            identity_provider=lambda: auth.identity,
            settings=self.settings,
            database_service=self.database_service,
            file_storage=self.file_storage,
            session_factory=self.session_factory,
        )

        session = ClientSession(id=session_id, auth=auth, router=router, workspace=workspace)
        # Re-render the current route whenever sign-in state changes
        session._unsubscribers.append(auth.subscribe(lambda _identity: router.refresh()))

        self.sessions[session_id] = session
        logger.info(f"Created client session {session_id[:8]}")
        return session

    def get_session(self, session_id: Optional[str]) -> Optional[ClientSession]:
        if not session_id:
            return None
        session = self.sessions.get(session_id)
        if session is None:
            return None
        if session.idle_for(time.monotonic()) > self.settings.session_idle_timeout and not session.workspace.is_busy:
            self.close_session(session_id)
            return None
        session.touch()
        self.sessions.move_to_end(session_id)
        return session

    def get_or_create_session(self, session_id: Optional[str]) -> ClientSession:
        return self.get_session(session_id) or self.create_session()

    def close_session(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def evict_idle_sessions(self) -> int:
        """Close sessions idle for longer than the timeout. Busy workspaces are kept."""
        now = time.monotonic()
        expired = [
            session_id
            for session_id, session in self.sessions.items()
            if session.idle_for(now) > self.settings.session_idle_timeout and not session.workspace.is_busy
        ]
        for session_id in expired:
            self.close_session(session_id)
        if expired:
            logger.info(f"Evicted {len(expired)} idle client session(s)")
        return len(expired)

    def _enforce_session_cap(self):
        """Make room for one more session by closing the least recently used idle ones"""
        for session_id in list(self.sessions):
            if len(self.sessions) < self.settings.max_sessions:
                return
            if self.sessions[session_id].workspace.is_busy:
                continue
            self.close_session(session_id)
            logger.info(f"Evicted client session {session_id[:8]} to stay under {self.settings.max_sessions}")
