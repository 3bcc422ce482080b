"""
Commission Kernel

Infrastructure shared by every commission calculation:
- Idempotency ledger of operation execution state
- Cluster-wide distributed lock guarding batch runs
- Structured logging, typed exceptions, injectable clock
- Database base classes and engine management
"""

__version__ = "0.1.0"
