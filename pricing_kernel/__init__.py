"""
Pricing Kernel

Core of the print-brokerage margin allocation system:
- Decimal money and CPM precision rules
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Persisted job pricing, purchase orders, invoices, rates and audit rows
"""

__version__ = "0.1.0"
