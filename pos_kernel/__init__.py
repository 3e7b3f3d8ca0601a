"""
POS Kernel - inventory valuation core

A functional core for a point-of-sale inventory manager with:
- Append-only per-ingredient batch ledger
- Weighted-average costing
- Recipe-derived product cost and sellable stock
- Typed, code-carrying exceptions
- Structured JSON logging
"""

__version__ = "0.1.0"
