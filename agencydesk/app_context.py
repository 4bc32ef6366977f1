# agencydesk application context
# Rev 0.3.0

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .integrations.llm.client import get_llm_client
from .repositories.backend import Backend
from .repositories.db import Database
from .repositories.sqlite_local_store import SQLiteLocalStore
from .services.insight_service import InsightService
from .utils.config import is_backend_configured, load_settings
from .utils.logging_setup import get_logger
from .utils.paths import LOCAL_STORE_PATH
from .viewmodels.workspace_viewmodel import WorkspaceViewModel


@dataclass
class AppContext:
    """Central container for shared app resources."""
    settings: Dict[str, Any]
    db: Database
    local_store: SQLiteLocalStore
    workspace: WorkspaceViewModel

    @classmethod
    def create(cls, backend: Optional[Backend], *, settings: Optional[Dict[str, Any]] = None,
               local_store_path: Path | str = LOCAL_STORE_PATH) -> "AppContext":
        """Open the local store and wire the root view model.

        A backend handed in without URL/key settings is ignored so the
        workspace reports the missing configuration instead of failing later.
        """
        log = get_logger("AppContext")
        settings = settings or load_settings()
        if backend is not None and not is_backend_configured(settings):
            log.error("backend settings missing; ignoring the supplied backend")
            backend = None
        db = Database(local_store_path)
        db.run_migrations()
        store = SQLiteLocalStore(db)
        vm = WorkspaceViewModel(
            backend,
            settings=settings,
            local_store=store,
            insight=InsightService(get_llm_client(settings)),
        )
        log.info("AppContext initialized with local store=%s", db.path)
        return cls(settings=settings, db=db, local_store=store, workspace=vm)

    def close(self) -> None:
        self.workspace.dispose()
        self.db.close()
