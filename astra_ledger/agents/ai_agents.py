"""
AI Agents for Astra Ledger

DESIGN DECISION: Each remote Gemini call is its own agent class with
one narrow job:

1. PARSING AGENT:  free text + memory context → candidate transactions
2. VISION AGENT:   receipt image → candidate transactions
3. SUMMARY AGENT:  question + ledger snapshot → short answer
4. ADVISOR AGENT:  ledger snapshot → one observation for the dashboard

CRITICAL BOUNDARIES:
- Agents NEVER write to storage. Extraction agents only PROPOSE records.
- Agent output is decoded through `decode_candidates`; nothing the model
  returns is trusted without validation.
- A failed call is logged (and audited when an AuditLogger is given) and
  degraded to an empty result or a fixed fallback sentence. Agents never
  retry and never raise.
"""

import json
from typing import Optional, Sequence, TypedDict

import google.generativeai as genai
import structlog

from astra_ledger.audit import AuditLogger
from astra_ledger.config import AppSettings, GeminiSettings, get_settings
from astra_ledger.models.conversation import ImageAttachment
from astra_ledger.models.transaction import (
    ExtractedTransaction,
    Transaction,
    decode_candidates,
)

logger = structlog.get_logger(__name__)


class CandidateSchema(TypedDict):
    """Response schema shared by the parsing and vision agents."""
    item: str
    amount: float
    category: str


# =============================================================================
# MEMORY CONTEXT
# =============================================================================

def build_memory_map(
    transactions: Sequence[Transaction],
    limit: int = 50,
) -> dict[str, str]:
    """
    First category ever recorded per item label.

    Labels are lowercased and stripped, so "Coffee" and "coffee " share a
    slot. Only the first `limit` distinct labels (in history order) are kept.
    """
    habits: dict[str, str] = {}
    for record in transactions:
        if not record.item or not record.category:
            continue
        key = record.item.lower().strip()
        if key and key not in habits:
            habits[key] = record.category
            if len(habits) >= limit:
                break
    return habits


def build_memory_context(
    transactions: Sequence[Transaction],
    limit: int = 50,
) -> str:
    """Render the memory map as `"item": "category"` pairs."""
    habits = build_memory_map(transactions, limit)
    return ", ".join(f'"{item}": "{category}"' for item, category in habits.items())


# =============================================================================
# AGENTS
# =============================================================================

class GeminiAgent:
    """
    Shared plumbing for all agents.

    Subclasses call `_generate`; tests patch it to avoid network calls.
    """

    name = "gemini"

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        app_settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._app_settings = app_settings or get_settings().app
        self._audit_logger = audit_logger
        if self.available:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)

    @property
    def available(self) -> bool:
        return self._settings.is_configured

    def _build_model(
        self,
        system_instruction: Optional[str],
        json_output: bool,
    ) -> genai.GenerativeModel:
        if json_output:
            generation_config = genai.GenerationConfig(
                temperature=self._settings.temperature,
                max_output_tokens=self._settings.max_tokens,
                response_mime_type="application/json",
                response_schema=list[CandidateSchema],
            )
        else:
            generation_config = genai.GenerationConfig(
                temperature=self._settings.temperature,
                max_output_tokens=self._settings.max_tokens,
            )
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=system_instruction,
            generation_config=generation_config,
        )

    async def _generate(
        self,
        contents,
        system_instruction: Optional[str] = None,
        json_output: bool = False,
    ) -> str:
        """Send one request and return the response text."""
        model = self._build_model(system_instruction, json_output)
        response = await model.generate_content_async(contents)
        return response.text


class ParsingAgent(GeminiAgent):
    """Turns free-form text like "coffee 120, taxi 300" into candidates."""

    name = "parsing"

    async def extract(
        self,
        text: str,
        memory_context: str,
    ) -> list[ExtractedTransaction]:
        if not self.available:
            return []

        currency = self._app_settings.currency_symbol
        system_instruction = f"""You are the "Parsing Agent" for Astra Ledger.
1. MEMORY: User's past habits: {{ {memory_context} }}.
   Reuse the remembered category when an item appears again.
2. TASK: Analyze the input for expenses.
3. RULES: Default to {currency} if the currency is missing. Handle natural language.
   Amounts are positive numbers.
4. OUTPUT: Return a JSON array of objects with "item", "amount" and "category"."""

        try:
            raw = await self._generate(
                text,
                system_instruction=system_instruction,
                json_output=True,
            )
        except Exception as e:
            logger.error("parsing_agent_failed", error=str(e))
            if self._audit_logger:
                self._audit_logger.log_extraction_failed(self.name, str(e))
            return []
        return decode_candidates(raw)


class VisionAgent(GeminiAgent):
    """Reads a receipt photo into candidates."""

    name = "vision"

    PROMPT = """Analyze this receipt image.
Extract the main Merchant Name (as 'item') and the Total Amount.
Infer the Category (Food, Transport, Groceries, Shopping, Bills, etc.).
Return the data in the specified JSON schema.
If multiple distinct items are visible that should be categorized differently, list them.
Otherwise, return a single total."""

    async def extract(self, image: ImageAttachment) -> list[ExtractedTransaction]:
        if not self.available:
            return []

        contents = [
            self.PROMPT,
            {"mime_type": image.mime_type, "data": image.data},
        ]
        try:
            raw = await self._generate(contents, json_output=True)
        except Exception as e:
            logger.error("vision_agent_failed", error=str(e), mime_type=image.mime_type)
            if self._audit_logger:
                self._audit_logger.log_extraction_failed(self.name, str(e))
            return []
        return decode_candidates(raw)


class SummaryAgent(GeminiAgent):
    """
    Answers questions about the ledger.

    Only a bounded snapshot is sent: the newest records reduced to
    item, amount and category.
    """

    name = "summary"

    async def answer(
        self,
        question: str,
        transactions: Sequence[Transaction],
    ) -> str:
        if not self.available:
            return "API Key missing."

        limit = self._app_settings.summary_snapshot_limit
        data_summary = json.dumps(
            [record.snapshot() for record in transactions[:limit]],
            ensure_ascii=False,
        )
        system_instruction = f"""You are the "Summary Agent" for Astra Ledger.
Data context (Last {limit} items): {data_summary}
Task: Answer the user's question concisely based on the data.
Style: Professional, concise, use bolding (Markdown) for numbers.
Currency: {self._app_settings.currency_symbol}"""

        try:
            text = await self._generate(question, system_instruction=system_instruction)
        except Exception as e:
            logger.error("summary_agent_failed", error=str(e))
            if self._audit_logger:
                self._audit_logger.log_external_service_error(self.name, str(e))
            return "Service temporarily unavailable."
        return (text or "").strip() or "I couldn't generate a summary."


class AdvisorAgent(GeminiAgent):
    """Produces the one-line dashboard insight."""

    name = "advisor"

    async def advise(self, transactions: Sequence[Transaction]) -> str:
        if not transactions:
            return "Start adding expenses to get AI insights!"
        if not self.available:
            return "Add your API Key to enable AI insights."

        limit = self._app_settings.advisor_snapshot_limit
        data_summary = json.dumps(
            [record.snapshot() for record in transactions[:limit]],
            ensure_ascii=False,
        )
        system_instruction = f"""You are a witty, premium Financial Coach.
Analyze this spending data: {data_summary}.
Identify ONE interesting pattern or give ONE specific piece of advice.
Keep it under 25 words. Be insightful but concise."""

        try:
            text = await self._generate(
                "Give me an insight.",
                system_instruction=system_instruction,
            )
        except Exception as e:
            logger.warning("advisor_agent_failed", error=str(e))
            if self._audit_logger:
                self._audit_logger.log_external_service_error(self.name, str(e))
            return "Keep tracking your expenses to see patterns."
        return (text or "").strip() or "Tracking is the first step to financial freedom."
