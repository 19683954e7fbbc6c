"""
finledger - Ledger Computation & Alerting Engine

Turns raw personal-finance records (accounts, transactions, credit cards,
installments, recurrences, savings goals, budgets) into trustworthy
balances, billing assignments, schedules and proactive alerts.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Fail loudly on partial data
3. Writes declare what they invalidate
4. Every alert rule stands alone
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "finledger Team"
