"""
Stock Kernel

Branch inventory reservation ledger and order fulfillment lifecycle with:
- Append-only stock movement log
- All-or-nothing multi-item reservations
- Row-locked read-modify-write transactions
- Strict order status state machine
"""

__version__ = "0.1.0"
