"""
Finance Tracker Backend - Source Package

Server side of a personal finance tracker: transaction ingestion plus
the small helper endpoints the dashboard calls (currency conversion,
market prices, transaction suggestions).

DESIGN PRINCIPLES:
1. Validate everything at the edge, store only what passed
2. Never store or log a raw client address
3. Degrade loudly in the logs, quietly to the caller, when a
   non-essential upstream (exchange rates) is down
4. Every step is auditable
5. Storage and auth backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
