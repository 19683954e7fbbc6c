"""
Ledger computation engine.

Pure functions over ledger records (dates, balance, billing, recurrence,
projection, alerts, health) plus the InstallmentScheduler, the one engine
component that writes through the storage collaborator.
"""
