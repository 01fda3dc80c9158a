"""
Claims Kernel

Domain core for the expense-claim risk engine:
- Immutable claim, alert and rule value objects
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Repository / notification ports and the SQLAlchemy persistence base
"""

__version__ = "0.1.0"
