"""
Dashboard Insights

Everything on the dashboard is DERIVED from the in-memory record set and
recomputed on every render. Nothing here is stored.

The one exception is the advisor tip, which costs a remote call and is
therefore cached for the whole session.
"""

import html
from typing import Optional, Sequence

from astra_ledger.agents import AdvisorAgent
from astra_ledger.audit import AuditLogger
from astra_ledger.models.transaction import CategoryStat, Transaction


def format_amount(amount: float) -> str:
    """Thousands separators, at most two decimals, no trailing zeros."""
    text = f"{amount:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def insight_card_html(tip: str) -> str:
    """Dashboard box for the advisor tip; the model text is escaped."""
    return (
        '<div class="insight-box">'
        "<h4>💡 Insight</h4>"
        f"<p>{html.escape(tip)}</p>"
        "</div>"
    )


def total_spent(transactions: Sequence[Transaction]) -> float:
    return sum(record.amount or 0 for record in transactions)


def normalize_category(category: Optional[str]) -> str:
    """'FOOD', 'food' and 'Food' all group under 'Food'."""
    name = (category or "").strip() or "Other"
    return name[:1].upper() + name[1:].lower()


def summarize_categories(transactions: Sequence[Transaction]) -> list[CategoryStat]:
    """Group by normalized category, largest spend first."""
    totals: dict[str, float] = {}
    for record in transactions:
        name = normalize_category(record.category)
        totals[name] = totals.get(name, 0.0) + (record.amount or 0)

    grand_total = sum(totals.values())
    ranked = sorted(totals.items(), key=lambda pair: pair[1], reverse=True)
    return [
        CategoryStat(
            name=name,
            amount=amount,
            percentage=int(amount / grand_total * 100 + 0.5) if grand_total else 0,
        )
        for name, amount in ranked
    ]


class InsightAdvisor:
    """
    Session-scoped cache around the advisor agent.

    The tip is computed once, the first time the dashboard is shown with a
    non-empty ledger, and then reused until the session ends. New
    transactions do not invalidate it.
    """

    def __init__(
        self,
        agent: Optional[AdvisorAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._agent = agent or AdvisorAgent()
        self._audit_logger = audit_logger
        self._tip: Optional[str] = None

    @property
    def tip(self) -> Optional[str]:
        return self._tip

    async def refresh(self, transactions: Sequence[Transaction]) -> Optional[str]:
        """Compute the tip if it is still missing; return the cached value."""
        if self._tip is None and transactions:
            self._tip = await self._agent.advise(transactions)
            if self._audit_logger:
                self._audit_logger.log_insight_generated(
                    snapshot_size=len(transactions)
                )
        return self._tip

    def reset(self) -> None:
        """Forget the tip (a new session)."""
        self._tip = None
