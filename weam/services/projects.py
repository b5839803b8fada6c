# weam/services/projects.py
"""
Project (contract section) queries.

Rows are returned as plain dicts: every projects column plus
- responsible           (= user_id, the owner)
- responsible_nickname  (owner's users.nickname)
- remainder_calc        (see remainder_expr; never stored)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlmodel import Session

from weam.models import EXPENSE, INCOME, OWED_TO_US, WE_OWE, Project, Transaction, User
from weam.security import AuthUser
from weam.validation import clamp_date_str, clamp_progress, clamp_str, to_int_or_none, to_number_or_none

projects = Project.__table__
transactions = Transaction.__table__
users = User.__table__


def derive_name(contractor: str, project: str) -> str:
    return f"{contractor} / {project}"


def remainder_expr(p=projects):
    """
    Contract amount minus what has actually moved against it:
    - "нам должны": actual income transactions
    - "мы должны":  actual expense transactions
    Planned rows (empty date) never count.
    """
    t = transactions.alias("t")
    settled = (
        select(func.sum(func.abs(t.c.total)))
        .where(
            t.c.project_id == p.c.id,
            t.c.date != "",
            or_(
                and_(p.c.direction == OWED_TO_US, t.c.operationType == INCOME),
                and_(p.c.direction == WE_OWE, t.c.operationType == EXPENSE),
            ),
        )
        .scalar_subquery()
    )
    return (func.coalesce(p.c.amount, 0) - func.coalesce(settled, 0)).label(
        "remainder_calc"
    )


def _select_rows():
    return select(
        projects,
        projects.c.user_id.label("responsible"),
        users.c.nickname.label("responsible_nickname"),
        remainder_expr(),
    ).select_from(projects.outerjoin(users, projects.c.user_id == users.c.id))


def _scope(stmt, user: AuthUser):
    if user.is_admin:
        return stmt
    return stmt.where(projects.c.user_id == user.user_id)


def list_projects(session: Session, user: AuthUser) -> List[Dict[str, Any]]:
    stmt = _scope(_select_rows(), user).order_by(
        projects.c.contractor, projects.c.project, projects.c.section
    )
    return [dict(r) for r in session.execute(stmt).mappings().all()]


def list_by_name(session: Session, user: AuthUser, name: str) -> List[Dict[str, Any]]:
    stmt = (
        _scope(_select_rows(), user)
        .where(projects.c.name == name)
        .order_by(projects.c.section)
    )
    return [dict(r) for r in session.execute(stmt).mappings().all()]


def get_project(session: Session, project_id: int) -> Optional[Dict[str, Any]]:
    row = session.execute(
        _select_rows().where(projects.c.id == project_id)
    ).mappings().first()
    return dict(row) if row else None


def normalize_new_project(body: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp a create payload; invalid dates become ''."""
    contractor = clamp_str(body.get("contractor"))
    project = clamp_str(body.get("project"))
    start = clamp_date_str(body.get("start")) or ""
    end = clamp_date_str(body.get("end")) or ""
    owner = body.get("responsible")
    if owner is None:
        owner = body.get("user_id")
    return {
        "contractor": contractor,
        "project": project,
        "section": clamp_str(body.get("section")),
        "direction": clamp_str(body.get("direction")),
        "grouping": clamp_str(body.get("grouping")),
        "amount": to_number_or_none(body.get("amount")) or 0,
        "note": clamp_str(body.get("note")),
        "start": start,
        "end": end,
        "status": clamp_str(body.get("status") or ""),
        "progress": clamp_progress(body.get("progress")),
        "user_id": to_int_or_none(owner),
        "name": clamp_str(body.get("name") or derive_name(contractor, project)),
    }


def create_project(session: Session, values: Dict[str, Any]) -> Dict[str, Any]:
    result = session.execute(insert(projects).values(**values))
    new_id = result.inserted_primary_key[0]
    row = get_project(session, new_id)
    session.commit()
    return row


def update_project(
    session: Session, project_id: int, patch: Dict[str, Any], user: AuthUser
) -> Optional[Tuple[Dict[str, Any], List[str]]]:
    """
    Apply an already-filtered patch. Regenerates `name` when contractor or
    project changes. Returns the fresh row with the sorted list of columns
    written (including a regenerated `name`), or None when nothing matched
    (missing, or not owned by a non-admin).
    """
    patch = dict(patch)
    if "contractor" in patch or "project" in patch:
        current = session.execute(
            select(projects.c.contractor, projects.c.project).where(
                projects.c.id == project_id
            )
        ).first()
        if current is not None:
            patch["name"] = derive_name(
                patch.get("contractor", current.contractor),
                patch.get("project", current.project),
            )

    stmt = update(projects).where(projects.c.id == project_id).values(**patch)
    if not user.is_admin:
        stmt = stmt.where(projects.c.user_id == user.user_id)
    result = session.execute(stmt)
    if not result.rowcount:
        session.rollback()
        return None

    row = get_project(session, project_id)
    session.commit()
    return row, sorted(patch)


def delete_project(session: Session, project_id: int) -> bool:
    result = session.execute(delete(projects).where(projects.c.id == project_id))
    session.commit()
    return result.rowcount > 0


def list_organizations(session: Session, user: AuthUser) -> List[Dict[str, Any]]:
    stmt = _scope(
        select(projects.c.contractor.label("name")).distinct(), user
    ).order_by("name")
    return [dict(r) for r in session.execute(stmt).mappings().all()]
