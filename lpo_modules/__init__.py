"""
Lifecycle modules (``lpo_modules``).

``orders`` (the LPO state machine), ``receiving`` (the goods-receipt
processor and its ledger) and ``assets`` (the asset registrar).  Each
module ships DTOs (``models``), ORM rows (``orm``), a transition table
(``workflows``) and a transaction-owning service (``service``).
"""
