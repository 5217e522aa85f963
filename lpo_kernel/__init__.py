"""
LPO Kernel (``lpo_kernel``).

Responsibility
--------------
Lowest layer of the procurement lifecycle engine: typed exceptions,
structured logging, database plumbing, pure domain value objects,
sequence allocation and per-entity locking.

Architecture position
---------------------
**Kernel** -- imported by ``lpo_engines``, ``lpo_modules`` and
``lpo_services``.  MUST NOT import from any of them.
"""

__version__ = "0.1.0"
