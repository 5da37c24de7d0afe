"""
Fieldwork Kernel - quote and invoice document engine

Prices field-service work and carries it through to payment:
- Line-item ledger with per-line GST
- Quote and invoice state machines with lazily derived expiry
- Explicit reconciliation of post-send variations
- Locked, overpayment-proof payment recording
- Token-scoped public accept/reject
"""

__version__ = "0.1.0"
