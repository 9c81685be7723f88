"""
Astra Ledger - Source Package

A conversational expense tracker: type expenses, upload a receipt, or ask
a question about what you spent.

DESIGN PRINCIPLES:
1. AI proposes → Ledger validates → Storage commits
2. One turn at a time
3. Questions never write
4. Every step must be auditable
5. Storage layer is swappable (cloud or local, chosen once at startup)
"""

__version__ = "1.0.0"
__author__ = "Astra Ledger Team"
