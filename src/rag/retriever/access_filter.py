# src/rag/retriever/access_filter.py — v1
"""Access control filter — drop fused results the principal may not see.

Runs after fusion (ranking reflects the whole corpus) and before context
building and query caching. Each result is evaluated on its own policy
only; order of the survivors is preserved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from hybridrag.core.models import DocumentAccessPolicy, FusedResult, Principal
from hybridrag.rag.backends.base_backend import BasePolicyStore

logger = logging.getLogger(__name__)


def can_access(policy: DocumentAccessPolicy, principal: Principal) -> bool:
    """AccessDecision(policy, principal).

    - public: everyone.
    - internal: organization members.
    - confidential: department match or any required role.
    - restricted: explicit allow-list or document owner.
    """
    if policy.tier == "public":
        return True
    if policy.tier == "internal":
        return principal.is_internal
    if policy.tier == "confidential":
        dept_match = policy.department is not None and policy.department in principal.departments
        role_match = any(role in principal.roles for role in policy.required_roles)
        return dept_match or role_match
    if policy.tier == "restricted":
        return principal.user_id in policy.allowed_users or (
            policy.owner_id is not None and policy.owner_id == principal.user_id
        )
    return False


class AccessControlFilter:
    """Stateless filter over an ordered FusedResult list."""

    def filter(self, results: Sequence[FusedResult], principal: Principal) -> list[FusedResult]:
        kept = [r for r in results if can_access(r.access_policy, principal)]
        dropped = len(results) - len(kept)
        if dropped:
            logger.debug(
                "Access filter removed %d of %d results for %s",
                dropped, len(results), principal.user_id,
            )
        return kept


async def resolve_policies(
    results: Sequence[FusedResult],
    policy_store: BasePolicyStore | None,
) -> list[FusedResult]:
    """Replace carried policies with the document store's current ones.

    The store is asked once per distinct document. Documents it does not
    know keep the policy that came with the search hits.
    """
    if policy_store is None or not results:
        return list(results)

    doc_ids = sorted({r.document_id for r in results})
    policies = await asyncio.gather(*(policy_store.get_policy(d) for d in doc_ids))
    by_doc = {d: p for d, p in zip(doc_ids, policies) if p is not None}
    return [
        r.model_copy(update={"access_policy": by_doc[r.document_id]})
        if r.document_id in by_doc else r
        for r in results
    ]
