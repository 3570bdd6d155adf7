"""
KAG refresh service: incremental pipeline runs against a state store.

One refresh for a scope:
1. Load the last persisted SignalState (or start fresh)
2. Pull events after the state's cursor, up to the batch limit
3. Run the pipeline (fold, signals, scores, recommendations)
4. Persist the new state, then the signals, scores and recommendations
   it produced (recommendations upserted by dedupe key)

Refreshes for the same scope must be serialized by the caller; different
scopes can be refreshed concurrently.
"""

from datetime import datetime
from typing import Optional

import structlog

from kag.config import KagSettings, get_settings
from kag.engine.pipeline import PipelineResult, run_pipeline
from kag.engine.templates import TemplateGenerator
from kag.storage.base import ProjectScope, SignalStateStore
from kag.utils.logging import bind_scope, clear_scope
from kag.utils.timeutils import to_datetime, utc_now

logger = structlog.get_logger(__name__)


class KagService:
    """
    Orchestrates incremental KAG refreshes per project scope.

    Attributes:
        store: State and event persistence
        settings: Engine settings (batch limit, evidence caps)
        llm_generate_template: Optional template generator collaborator
    """

    def __init__(
        self,
        store: SignalStateStore,
        settings: Optional[KagSettings] = None,
        llm_generate_template: Optional[TemplateGenerator] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.llm_generate_template = llm_generate_template

    async def refresh(
        self,
        scope: ProjectScope,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> PipelineResult:
        """
        Run one incremental refresh for ``scope``.

        State and outputs are saved only after the whole pipeline succeeds,
        so a failing template generator leaves the stored state, cursor and
        recommendations untouched and the same events are retried on the
        next refresh. Recommendations are upserted by dedupe key, so
        repeated refreshes over unchanged inputs keep one row per key.
        """
        now = to_datetime(now, utc_now())
        batch_limit = limit or self.settings.event_batch_limit
        bind_scope(scope.project_id, scope.account_scope_id)
        try:
            previous = self.store.load(scope)
            cursor = previous.cursor.last_event_id if previous else 0
            events = self.store.list_events_after(scope, cursor, batch_limit)

            result = await run_pipeline(
                previous,
                events,
                now=now,
                llm_generate_template=self.llm_generate_template,
                settings=self.settings,
            )
            self.store.save(scope, result.state)
            stored_signals = self.store.save_signals(scope, result.signals, now)
            stored_scores = self.store.save_scores(scope, result.scores.scores)
            touched = self.store.upsert_recommendations(scope, result.recommendations, now)

            logger.info(
                "kag_refresh_completed",
                previous_cursor=cursor,
                processed_events=result.processed_events,
                last_event_id=result.last_event_id,
                recommendations=len(result.recommendations),
                stored_signals=stored_signals,
                stored_scores=stored_scores,
                recommendations_touched=touched,
            )
            return result
        finally:
            clear_scope()
