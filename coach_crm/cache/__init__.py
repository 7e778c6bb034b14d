from .query_cache import QueryCache, QueryCacheEntry, QueryKey
from .reconciler import (
    CacheTarget,
    MutationTransaction,
    OptimisticReconciler,
    TransactionState,
    detail_target,
    entity_target,
    list_target,
    nested_list_target,
    removal_target,
)

__all__ = [
    "CacheTarget",
    "MutationTransaction",
    "OptimisticReconciler",
    "QueryCache",
    "QueryCacheEntry",
    "QueryKey",
    "TransactionState",
    "detail_target",
    "entity_target",
    "list_target",
    "nested_list_target",
    "removal_target",
]
