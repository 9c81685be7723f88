"""
Main Orchestrator for Astra Ledger

This module ties together all the components and defines what happens on
every "send" from the user:

    user turn → vision (if image) → question? ──yes──> Summary agent → answer
                                        │
                                        no
                                        ▼
                          parsing (if text) → ledger commit → confirmation

DESIGN DECISION: The orchestrator enforces the boundaries:
- Agents only PROPOSE records; every write goes through the storage adapter
- Only one turn is processed at a time (the processing gate)
- The status always returns to idle, whatever happened
- Any failure inside a turn becomes ONE generic error reply
"""

import asyncio
import re
import threading
from typing import Callable, Optional, Sequence
from uuid import UUID

import structlog

from astra_ledger.agents import (
    AdvisorAgent,
    ParsingAgent,
    SummaryAgent,
    VisionAgent,
    build_memory_context,
)
from astra_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from astra_ledger.config import AppSettings, Settings, get_settings
from astra_ledger.insights import (
    InsightAdvisor,
    format_amount,
    summarize_categories,
    total_spent,
)
from astra_ledger.models.conversation import (
    AgentStatus,
    ChatTurn,
    ImageAttachment,
    UserIdentity,
)
from astra_ledger.models.transaction import (
    BatchCommitResult,
    CategoryStat,
    CommitOutcome,
    ExtractedTransaction,
    Transaction,
)
from astra_ledger.services.identity import (
    LOCAL_USER_ID,
    AnonymousFirebaseIdentity,
    IdentityProvider,
    LocalIdentity,
)
from astra_ledger.services.storage import (
    FirestoreTransactionStorage,
    LocalJsonTransactionStorage,
    StorageError,
    TransactionStorageInterface,
    Unsubscribe,
)

logger = structlog.get_logger(__name__)


INTRO_MESSAGE = (
    "Astra Ledger online. Type expenses, upload a receipt, "
    "or ask 'How much did I spend on food?'"
)
GENERIC_ERROR_MESSAGE = "System encountered an error processing your request."
NO_TRANSACTION_IN_IMAGE = "I couldn't identify any clear transactions in that image."
NO_TRANSACTION_IN_TEXT = "I couldn't detect a valid expense transaction."
EMPTY_TURN_MESSAGE = "Type an expense or attach a receipt to get started."
RECEIPT_SOURCE_TEXT = "Receipt Scan"

# "spent" or "total" immediately followed by an amount ("Spent 500 on dinner",
# "total Rs 300 for taxi") is a statement, not a question.
QUESTION_PATTERN = re.compile(
    r"^\s*(?:"
    r"(?:how|what|show|list|sum|calculate|analyze)\b"
    r"|(?:spent|total)\b(?!\s*(?:[₹$€£]|rs\.?|inr)?\s*\d)"
    r")",
    re.IGNORECASE,
)

StatusCallback = Callable[[AgentStatus], None]


class TurnInProgressError(Exception):
    """A turn was sent while another one is still being processed."""
    pass


class QueryFlow:
    """
    Answers questions about existing records.

    Classification runs before any extraction work. A question never
    creates transactions.
    """

    def __init__(
        self,
        summary_agent: Optional[SummaryAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._summary_agent = summary_agent or SummaryAgent()
        self._audit_logger = audit_logger

    @staticmethod
    def is_question(text: Optional[str]) -> bool:
        """True when the text starts with an interrogative/aggregation lead word."""
        return bool(text) and QUESTION_PATTERN.match(text) is not None

    async def answer_question(
        self,
        question: str,
        transactions: Sequence[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """Delegate to the summary agent and return its answer verbatim."""
        correlation_id = correlation_id or create_correlation_id()

        answer = await self._summary_agent.answer(question, transactions)

        if self._audit_logger:
            self._audit_logger.log_question_answered(
                question=question,
                snapshot_size=len(transactions),
                correlation_id=correlation_id,
            )
        return answer


class ExtractionFlow:
    """
    Orchestrates one user turn.

    States: idle → vision → parsing → ledger → idle, plus summary for
    questions. Vision always runs before parsing; the commits of one turn
    run concurrently and are joined before the reply is built.
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        parsing_agent: Optional[ParsingAgent] = None,
        vision_agent: Optional[VisionAgent] = None,
        query_flow: Optional[QueryFlow] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._parsing_agent = parsing_agent or ParsingAgent()
        self._vision_agent = vision_agent or VisionAgent()
        self._query_flow = query_flow or QueryFlow(audit_logger=audit_logger)
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app
        self._processing = False
        self._status = AgentStatus.IDLE

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def status(self) -> AgentStatus:
        return self._status

    def _set_status(self, status: AgentStatus, on_status: Optional[StatusCallback]) -> None:
        self._status = status
        if on_status:
            on_status(status)

    async def handle_turn(
        self,
        user_id: str,
        text: Optional[str],
        image: Optional[ImageAttachment] = None,
        history: Sequence[Transaction] = (),
        on_status: Optional[StatusCallback] = None,
    ) -> ChatTurn:
        """
        Process one send and return the assistant's reply.

        Args:
            user_id: Owner of any records created
            text: What the user typed (may be empty)
            image: Optional receipt photo
            history: The user's current records, newest first
            on_status: Called on every state change

        Raises:
            TurnInProgressError: If another turn is still running
        """
        if self._processing:
            if self._audit_logger:
                self._audit_logger.log_turn_rejected_busy()
            raise TurnInProgressError("A turn is already being processed")

        self._processing = True
        correlation_id = create_correlation_id()
        text = text or ""
        has_text = bool(text.strip())
        is_question = has_text and self._query_flow.is_question(text)

        if self._audit_logger:
            self._audit_logger.log_turn_received(
                correlation_id=correlation_id,
                has_text=has_text,
                has_image=image is not None,
                is_question=is_question,
            )

        try:
            return await self._run_turn(
                user_id=user_id,
                text=text,
                has_text=has_text,
                is_question=is_question,
                image=image,
                history=history,
                on_status=on_status,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.exception("turn_failed", correlation_id=str(correlation_id))
            if self._audit_logger:
                self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return ChatTurn.assistant(GENERIC_ERROR_MESSAGE)
        finally:
            self._processing = False
            self._set_status(AgentStatus.IDLE, on_status)

    async def _run_turn(
        self,
        user_id: str,
        text: str,
        has_text: bool,
        is_question: bool,
        image: Optional[ImageAttachment],
        history: Sequence[Transaction],
        on_status: Optional[StatusCallback],
        correlation_id: UUID,
    ) -> ChatTurn:
        if not has_text and image is None:
            return ChatTurn.assistant(EMPTY_TURN_MESSAGE)

        candidates: list[ExtractedTransaction] = []

        # A. Vision
        if image is not None:
            self._set_status(AgentStatus.VISION, on_status)
            vision_results = await self._vision_agent.extract(image)
            self._log_extraction("vision", len(vision_results), correlation_id)
            candidates.extend(vision_results)

        # B. Question or text parsing
        if has_text:
            if is_question:
                # Vision candidates of a question turn are not committed.
                self._set_status(AgentStatus.SUMMARY, on_status)
                answer = await self._query_flow.answer_question(
                    text, history, correlation_id
                )
                return ChatTurn.assistant(answer)

            self._set_status(AgentStatus.PARSING, on_status)
            memory_context = build_memory_context(
                history, self._settings.memory_context_limit
            )
            text_results = await self._parsing_agent.extract(text, memory_context)
            self._log_extraction("parsing", len(text_results), correlation_id)
            candidates.extend(text_results)

        # C. Commit to the ledger
        if candidates:
            self._set_status(AgentStatus.LEDGER, on_status)
            source_text = text if has_text else RECEIPT_SOURCE_TEXT
            result = await self.commit_all(user_id, candidates, source_text, correlation_id)
            if not result.all_succeeded:
                return ChatTurn.assistant(GENERIC_ERROR_MESSAGE)

            total = format_amount(result.total_amount)
            return ChatTurn.assistant(
                f"Ledger updated. Total: {self._settings.currency_symbol} {total}",
                transactions=tuple(candidates),
            )

        if image is not None and not has_text:
            return ChatTurn.assistant(NO_TRANSACTION_IN_IMAGE)
        return ChatTurn.assistant(NO_TRANSACTION_IN_TEXT)

    async def commit_all(
        self,
        user_id: str,
        candidates: Sequence[ExtractedTransaction],
        source_text: str,
        correlation_id: Optional[UUID] = None,
    ) -> BatchCommitResult:
        """
        Create every candidate concurrently and collect per-record outcomes.
        """
        correlation_id = correlation_id or create_correlation_id()

        results = await asyncio.gather(
            *(self._storage.create(user_id, candidate, source_text) for candidate in candidates),
            return_exceptions=True,
        )

        outcomes: list[CommitOutcome] = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                outcomes.append(CommitOutcome(
                    candidate=candidate,
                    error=f"{type(result).__name__}: {result}",
                ))
                continue
            outcomes.append(CommitOutcome(candidate=candidate, record_id=result))
            if self._audit_logger:
                self._audit_logger.log_transaction_saved(
                    record_id=result,
                    item=candidate.item,
                    amount=candidate.amount,
                    correlation_id=correlation_id,
                )

        batch = BatchCommitResult(outcomes=outcomes)
        if not batch.all_succeeded and self._audit_logger:
            self._audit_logger.log_save_failed(
                failed_count=len(batch.failed),
                total_count=len(outcomes),
                errors=[outcome.error or "" for outcome in batch.failed],
                correlation_id=correlation_id,
            )
        return batch

    def _log_extraction(self, agent: str, count: int, correlation_id: UUID) -> None:
        if self._audit_logger:
            self._audit_logger.log_extraction_completed(
                agent=agent,
                candidate_count=count,
                correlation_id=correlation_id,
            )


class LedgerSession:
    """
    Everything one UI session holds.

    - the current user (from the identity provider)
    - the live record set (replaced by every subscription callback, which
      may arrive from another thread at any time)
    - the append-only conversation
    - the cached dashboard tip
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        identity: IdentityProvider,
        extraction_flow: ExtractionFlow,
        advisor: InsightAdvisor,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._identity = identity
        self._extraction_flow = extraction_flow
        self._advisor = advisor
        self._audit_logger = audit_logger

        self._lock = threading.Lock()
        self._transactions: list[Transaction] = []
        self._turns: list[ChatTurn] = [ChatTurn.assistant(INTRO_MESSAGE)]
        self._user: Optional[UserIdentity] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._status = AgentStatus.IDLE

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, timeout: Optional[float] = None) -> None:
        """Resolve the user and open the live subscription."""
        self._user = await self._identity.wait_for_user(timeout)
        if self._user and self._audit_logger:
            self._audit_logger.log_user_signed_in(self._user.uid, self._identity.mode)
        self._subscribe()

    def _subscribe(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
        self._unsubscribe = self._storage.subscribe(self.user_id, self._on_change)

    def _on_change(self, records: list[Transaction]) -> None:
        with self._lock:
            self._transactions = list(records)

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user.uid if self._user else LOCAL_USER_ID

    @property
    def mode(self) -> str:
        return self._storage.mode

    @property
    def transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions)

    @property
    def turns(self) -> tuple[ChatTurn, ...]:
        return tuple(self._turns)

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def is_processing(self) -> bool:
        return self._extraction_flow.is_processing

    @property
    def insight_tip(self) -> Optional[str]:
        return self._advisor.tip

    @property
    def total(self) -> float:
        return total_spent(self.transactions)

    @property
    def category_stats(self) -> list[CategoryStat]:
        return summarize_categories(self.transactions)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _set_status(self, status: AgentStatus) -> None:
        self._status = status

    async def send(
        self,
        text: Optional[str],
        image: Optional[ImageAttachment] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Optional[ChatTurn]:
        """
        Append the user turn, run it, append the reply.

        Returns None (and records nothing) for an empty send or while
        another turn is running.
        """
        text = text or ""
        if not text.strip() and image is None:
            return None
        if self.is_processing:
            return None

        def track(status: AgentStatus) -> None:
            self._set_status(status)
            if on_status:
                on_status(status)

        self._turns.append(ChatTurn.user(text, image))
        try:
            reply = await self._extraction_flow.handle_turn(
                user_id=self.user_id,
                text=text,
                image=image,
                history=self.transactions,
                on_status=track,
            )
        except TurnInProgressError:
            return None
        self._turns.append(reply)
        return reply

    async def delete(self, record_id: str) -> bool:
        """Remove a record; failures are logged, not raised."""
        try:
            await self._storage.delete(self.user_id, record_id)
        except StorageError as e:
            logger.error("delete_failed", record_id=record_id, error=str(e))
            return False
        if self._audit_logger:
            self._audit_logger.log_transaction_deleted(record_id)
        return True

    async def refresh_insight(self) -> Optional[str]:
        """Compute the dashboard tip once per session."""
        return await self._advisor.refresh(self.transactions)


# =============================================================================
# COMPONENT FACTORY
# =============================================================================

def create_storage(
    settings: Optional[Settings] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> TransactionStorageInterface:
    """Firestore when Firebase is configured, the local JSON file otherwise."""
    settings = settings or get_settings()
    if settings.cloud_mode:
        return FirestoreTransactionStorage(
            app_id=settings.app.app_id,
            settings=settings.firebase,
            audit_logger=audit_logger,
        )
    return LocalJsonTransactionStorage(
        data_dir=settings.app.local_data_path,
        app_id=settings.app.app_id,
    )


def create_identity_provider(settings: Optional[Settings] = None) -> IdentityProvider:
    """Anonymous Firebase sign-in when configured, the placeholder user otherwise."""
    settings = settings or get_settings()
    if settings.cloud_mode:
        return AnonymousFirebaseIdentity(settings=settings.firebase)
    return LocalIdentity(delay_seconds=settings.app.local_identity_delay_seconds)


def create_ledger_session(
    settings: Optional[Settings] = None,
    storage: Optional[TransactionStorageInterface] = None,
    identity: Optional[IdentityProvider] = None,
) -> LedgerSession:
    """
    Factory function to create all application components.

    The storage and identity strategies are chosen here, once, from
    configuration. Pass them explicitly to override (e.g. in tests).
    """
    settings = settings or get_settings()
    app_settings = settings.app
    gemini_settings = settings.gemini

    configure_logging(app_settings.log_level, app_settings.json_logs)
    audit_logger = AuditLogger()

    storage = storage or create_storage(settings, audit_logger)
    identity = identity or create_identity_provider(settings)
    logger.info("ledger_mode_selected", storage=storage.mode, identity=identity.mode)

    query_flow = QueryFlow(
        summary_agent=SummaryAgent(gemini_settings, app_settings, audit_logger),
        audit_logger=audit_logger,
    )
    extraction_flow = ExtractionFlow(
        storage=storage,
        parsing_agent=ParsingAgent(gemini_settings, app_settings, audit_logger),
        vision_agent=VisionAgent(gemini_settings, app_settings, audit_logger),
        query_flow=query_flow,
        audit_logger=audit_logger,
        settings=app_settings,
    )
    advisor = InsightAdvisor(
        agent=AdvisorAgent(gemini_settings, app_settings, audit_logger),
        audit_logger=audit_logger,
    )

    return LedgerSession(
        storage=storage,
        identity=identity,
        extraction_flow=extraction_flow,
        advisor=advisor,
        audit_logger=audit_logger,
    )
