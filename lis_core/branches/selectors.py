# lis_core/branches/selectors.py
from __future__ import annotations

from uuid import UUID

from lis_core.branches.models import Branch
from lis_core.common.api.exceptions import NotFoundError


def require_branch(branch_id: UUID | None) -> Branch | None:
    if branch_id is None:
        return None
    branch = Branch.objects.filter(id=branch_id).first()
    if branch is None:
        raise NotFoundError("Branch not found.", details={"branch_id": str(branch_id)})
    return branch
