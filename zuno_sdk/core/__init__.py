"""
Core contract layer: resolution, handles and the transaction pipeline.

Import from the submodules directly, e.g.:
    from zuno_sdk.core.registry import ContractRegistry
    from zuno_sdk.core.transactions import TransactionManager
"""
