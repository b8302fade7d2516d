"""
DashboardService - public operations over a user's dashboard document.

Every operation is one load -> mutate -> write cycle over a local copy of
the document:

    load      store.get(user_id)                          (I/O)
    mutate    section state machine, module aggregator,
              milestone evaluator                         (in memory)
    write     store.update(user_id, paths, revision)      (I/O)

Mutations for one user are serialized through a per-user asyncio.Lock, and
every write is conditional on the revision that was loaded. When another
process wrote in between, the whole cycle is re-run on the fresh document
(up to `max_write_attempts` times). Store failures are never retried.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar, Union

from pydantic import ValidationError

from intakeflow.config import WorkflowSettings, load_settings
from intakeflow.errors import (
    ConcurrentUpdateError,
    NotFoundError,
    StoreUnavailableError,
    WorkflowError,
)
from intakeflow.schemas import (
    DashboardDocument,
    InitializeResult,
    SaveResult,
    Section,
    SectionUpdateResult,
    SequencePolicy,
)
from intakeflow.utils.template_loader import load_template

from . import modules as aggregator
from . import navigator
from . import sections as section_states
from .milestones import evaluate_milestones
from .reconciler import find_drift, reconcile_modules, resync_counts
from .sections import SectionEvent, check_sequence
from .store import DocumentStore, SQLiteDocumentStore

logger = logging.getLogger(__name__)

SectionId = Union[int, str]
T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _UserLock:
    """A user's lock and how many operations hold or wait for it."""
    lock: asyncio.Lock
    users: int = 0


class DashboardService:
    """
    Progress/unlock engine over a document store.

    Combines the section state machine, module aggregator, milestone
    evaluator and migration reconciler into the dashboard operations.
    """

    def __init__(
        self,
        store: DocumentStore,
        template: Optional[dict[str, Any]] = None,
        sequence_policy: SequencePolicy = SequencePolicy.PERMISSIVE,
        max_write_attempts: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Document store holding one dashboard per user id
            template: Dashboard template (default: packaged "dashboard" template)
            sequence_policy: How strictly section order is enforced
            max_write_attempts: Attempts per operation when a write conflicts
            clock: Callable returning the current time (default: UTC now)
        """
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")

        self.store = store
        self.template = template if template is not None else load_template("dashboard")
        self.sequence_policy = SequencePolicy(sequence_policy)
        self.max_write_attempts = max_write_attempts
        self._clock = clock or _utcnow
        self._locks: dict[str, _UserLock] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[WorkflowSettings] = None,
        store: Optional[DocumentStore] = None,
    ) -> "DashboardService":
        """Build a service (and, unless given, a SQLite store) from settings."""
        settings = settings or load_settings()
        return cls(
            store=store or SQLiteDocumentStore(settings.db_path),
            template=load_template(settings.template, settings.templates_dir),
            sequence_policy=settings.sequence_policy,
            max_write_attempts=settings.max_write_attempts,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize_dashboard(self, user_id: str) -> InitializeResult:
        """
        Create the user's dashboard from the template if it does not exist.

        Returns:
            InitializeResult with already_exists=True when nothing was created
        """
        document = self._build_document(user_id, self._clock())
        try:
            created = await self.store.create(user_id, document.dump())
        except WorkflowError as e:
            logger.error(f"Error initializing dashboard for {user_id}: {e}")
            raise

        if not created:
            logger.info(f"Dashboard already exists for {user_id}")
            return InitializeResult(already_exists=True)

        logger.info(f"Dashboard initialized from template for {user_id}")
        return InitializeResult(already_exists=False)

    def _build_document(self, user_id: str, now: datetime) -> DashboardDocument:
        document = DashboardDocument.model_validate({
            **copy.deepcopy(self.template),
            "userId": user_id,
            "createdAt": now,
            "lastUpdatedAt": now,
        })
        for module in document.modules:
            aggregator.recount(module)
        self._refresh_progress(document, now)
        return document

    # -------------------------------------------------------------------------
    # Reads and repair
    # -------------------------------------------------------------------------

    async def peek_dashboard_state(self, user_id: str) -> Optional[DashboardDocument]:
        """Load the dashboard as stored. Never writes."""
        loaded = await self._load(user_id)
        return loaded[0] if loaded else None

    async def repair_dashboard(self, user_id: str) -> list[str]:
        """
        Run the migration repair pass and persist it if anything was healed.

        Returns:
            Ids of the modules that were unlocked (empty: no write happened)

        Raises:
            NotFoundError: If the user has no dashboard
        """
        document, healed = await self._repair(user_id)
        if document is None:
            raise NotFoundError(f"Dashboard {user_id} not found")
        return healed

    async def get_dashboard_state(self, user_id: str) -> Optional[DashboardDocument]:
        """
        Load the dashboard, repairing unlock drift first.

        This is the load boundary at which the repair pass runs; a document
        without drift is returned without any write.

        Returns:
            The (possibly healed) document, or None if the user has none
        """
        document, _ = await self._repair(user_id)
        return document

    async def get_section_data(
        self, user_id: str, module_id: str, section_id: SectionId
    ) -> Optional[Section]:
        """Get one section of the (repaired) dashboard, or None if absent."""
        document = await self.get_dashboard_state(user_id)
        if document is None:
            return None

        module_index = document.find_module(module_id)
        if module_index is None:
            return None
        module = document.modules[module_index]

        section_index = module.find_section(section_id)
        if section_index is None:
            return None
        return module.sections[section_index]

    async def get_progress_summary(self, user_id: str) -> Optional[dict]:
        """Progress summary of the (repaired) dashboard, or None if absent."""
        document = await self.get_dashboard_state(user_id)
        if document is None:
            return None
        return navigator.progress_summary(document)

    async def _repair(self, user_id: str) -> tuple[Optional[DashboardDocument], list[str]]:
        def operation(document: DashboardDocument, now: datetime):
            if not find_drift(document.modules):
                return [], False
            healed = reconcile_modules(document.modules)
            self._refresh_progress(document, now)
            return healed, True

        document, healed = await self._transact(
            user_id, operation, "repairing dashboard", missing_ok=True, resync=False
        )
        if healed:
            logger.info(f"Dashboard {user_id} migrated, unlocked modules {healed}")
        return document, healed or []

    # -------------------------------------------------------------------------
    # Section operations
    # -------------------------------------------------------------------------

    async def start_section(
        self, user_id: str, module_id: str, section_id: SectionId
    ) -> SectionUpdateResult:
        """
        Mark a not-started section as in progress.

        Raises:
            NotFoundError: Unknown dashboard, module or section
            InvalidTransitionError: The section is already started or completed
            SequenceError: The sequencing policy forbids starting it
        """
        def operation(document: DashboardDocument, now: datetime):
            module_index, section_index = self._locate(document, module_id, section_id)
            module = document.modules[module_index]
            check_sequence(module, section_index, SectionEvent.START, self.sequence_policy)

            section_states.start(module.sections[section_index], now)
            aggregator.mark_started(module, now)
            return self._aggregate(document, module_index, section_index, False, now), True

        _, result = await self._transact(user_id, operation, f"starting section {section_id}")
        return result

    async def complete_section(
        self,
        user_id: str,
        module_id: str,
        section_id: SectionId,
        data: Any = None,
    ) -> SectionUpdateResult:
        """
        Mark a section as completed and run the unlock cascade.

        Completing an already-completed section updates its data and
        completedAt but unlocks nothing and counts nothing twice.

        Raises:
            NotFoundError: Unknown dashboard, module or section
            SequenceError: The sequencing policy forbids completing it
        """
        def operation(document: DashboardDocument, now: datetime):
            module_index, section_index = self._locate(document, module_id, section_id)
            module = document.modules[module_index]
            check_sequence(module, section_index, SectionEvent.COMPLETE, self.sequence_policy)

            first = section_states.complete(module.sections[section_index], now, data)
            aggregator.mark_started(module, now)
            return self._aggregate(document, module_index, section_index, first, now), True

        _, result = await self._transact(user_id, operation, f"completing section {section_id}")
        return result

    async def save_section_data(
        self,
        user_id: str,
        module_id: str,
        section_id: SectionId,
        data: Any,
    ) -> SaveResult:
        """
        Replace a section's data wholesale and bump its version.

        Raises:
            NotFoundError: Unknown dashboard, module or section
        """
        def operation(document: DashboardDocument, now: datetime):
            module_index, section_index = self._locate(document, module_id, section_id)
            section = document.modules[module_index].sections[section_index]
            version = section_states.save(section, data, now)
            logger.info(f"Section {section_id} data saved (version {version})")
            return SaveResult(section=section), True

        _, result = await self._transact(
            user_id, operation, f"saving section {section_id}", track_progress=False
        )
        return result

    async def add_edit_history(
        self,
        user_id: str,
        module_id: str,
        section_id: SectionId,
        field: str,
        previous_value: Any,
        new_value: Any,
        edited_by: str = "user",
    ) -> bool:
        """
        Append one entry to a section's edit history. Does not bump version.

        Raises:
            NotFoundError: Unknown dashboard, module or section
        """
        def operation(document: DashboardDocument, now: datetime):
            module_index, section_index = self._locate(document, module_id, section_id)
            section = document.modules[module_index].sections[section_index]
            section_states.add_edit(section, field, previous_value, new_value, now, edited_by)
            return True, True

        _, result = await self._transact(
            user_id, operation, f"adding edit history to section {section_id}",
            track_progress=False,
        )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _user_lock(self, user_id: str):
        """Hold the user's lock; the entry is dropped once nobody holds or awaits it."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock(asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    async def _load(self, user_id: str) -> Optional[tuple[DashboardDocument, int]]:
        stored = await self.store.get(user_id)
        if stored is None:
            return None
        try:
            document = DashboardDocument.model_validate(stored.data)
        except ValidationError as e:
            raise StoreUnavailableError(f"Dashboard {user_id} is not a valid document: {e}") from e
        return document, stored.revision

    async def _transact(
        self,
        user_id: str,
        operation: Callable[[DashboardDocument, datetime], tuple[T, bool]],
        action: str,
        track_progress: bool = True,
        missing_ok: bool = False,
        resync: bool = True,
    ) -> tuple[Optional[DashboardDocument], Optional[T]]:
        """
        Run load -> operation -> conditional write for one user.

        `operation` mutates the loaded copy and returns (result, changed);
        nothing is written when changed is False. With `resync`, modules
        whose stored aggregates disagree with their sections are rebuilt
        from the sections before the operation runs, and written with it.

        Returns:
            Tuple of (document after the operation, operation result);
            (None, None) when the dashboard is missing and missing_ok is set
        """
        try:
            async with self._user_lock(user_id):
                for attempt in range(1, self.max_write_attempts + 1):
                    loaded = await self._load(user_id)
                    if loaded is None:
                        if missing_ok:
                            return None, None
                        raise NotFoundError(f"Dashboard {user_id} not found")

                    document, revision = loaded
                    now = self._clock()
                    resynced = resync_counts(document.modules) if resync else []
                    if resynced:
                        self._refresh_progress(document, now)

                    result, changed = operation(document, now)
                    if not changed and not resynced:
                        return document, result

                    document.last_updated_at = now
                    try:
                        await self.store.update(
                            user_id,
                            self._changed_fields(document, track_progress or bool(resynced)),
                            expected_revision=revision,
                        )
                    except ConcurrentUpdateError:
                        if attempt == self.max_write_attempts:
                            raise
                        logger.debug(
                            f"Write conflict on dashboard {user_id} while {action}, "
                            f"retrying (attempt {attempt + 1}/{self.max_write_attempts})"
                        )
                        continue
                    return document, result
        except WorkflowError as e:
            logger.error(f"Error {action} for {user_id}: {e}")
            raise

    @staticmethod
    def _changed_fields(document: DashboardDocument, track_progress: bool) -> dict[str, Any]:
        dumped = document.dump()
        fields = {
            "modules": dumped["modules"],
            "lastUpdatedAt": dumped["lastUpdatedAt"],
        }
        if track_progress:
            tracking = dumped["progressTracking"]
            fields["progressTracking.overallProgress"] = tracking["overallProgress"]
            fields["progressTracking.moduleProgress"] = tracking["moduleProgress"]
            fields["progressTracking.milestones"] = tracking["milestones"]
        return fields

    @staticmethod
    def _locate(
        document: DashboardDocument, module_id: str, section_id: SectionId
    ) -> tuple[int, int]:
        module_index = document.find_module(module_id)
        if module_index is None:
            raise NotFoundError(f"Module {module_id} not found")

        section_index = document.modules[module_index].find_section(section_id)
        if section_index is None:
            raise NotFoundError(f"Section {section_id} not found in module {module_id}")
        return module_index, section_index

    def _aggregate(
        self,
        document: DashboardDocument,
        module_index: int,
        section_index: int,
        first_completion: bool,
        now: datetime,
    ) -> SectionUpdateResult:
        cascade = aggregator.apply_section_change(
            document.modules, module_index, section_index, first_completion, now
        )
        achieved = self._refresh_progress(document, now)

        module = document.modules[module_index]
        next_index = section_index + 1
        next_section = module.sections[next_index] if next_index < len(module.sections) else None
        logger.info(
            f"Module {module.id} progress: {module.completed_sections}/"
            f"{module.total_sections} sections ({module.progress_percentage}%)"
        )

        return SectionUpdateResult(
            section=module.sections[section_index],
            next_section=next_section,
            module_progress=module.progress_percentage,
            unlocked_modules=cascade.unlocked_modules,
            achieved_milestones=achieved,
        )

    @staticmethod
    def _refresh_progress(document: DashboardDocument, now: datetime) -> list[str]:
        """Recompute overall/module progress and milestones. Returns new milestone ids."""
        tracking = document.progress_tracking
        tracking.overall_progress = aggregator.overall_progress(document.modules)
        tracking.module_progress = aggregator.module_progress(document.modules)
        tracking.milestones, achieved = evaluate_milestones(
            tracking.milestones, document.modules, tracking.overall_progress, now
        )
        return achieved
