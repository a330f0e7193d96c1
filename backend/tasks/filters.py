"""
Task listing filters.

Builds the criteria that scope a task listing to what an identity may see,
combined with the caller's optional narrowing filters, plus ordering and
pagination.

Every rule is appended as its own conjunct. For a non-admin caller searching
for a term, the query is therefore

    (assigned_to = me OR created_by = me) AND (title ~ term OR description ~ term)

and never a single flattened OR, which would expose other users' tasks that
happen to match the term.
"""

import logging
import math
from typing import List, Tuple

from sqlalchemy import and_, asc, desc, or_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql.elements import ColumnElement

import models
import schemas
from auth.identity import Identity

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": models.Task.created_at,
    "updatedAt": models.Task.updated_at,
    "dueDate": models.Task.due_date,
    "title": models.Task.title,
    "status": models.Task.status,
    "priority": models.Task.priority,
}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def ownership_scope(identity: Identity) -> List[ColumnElement]:
    """Criteria limiting tasks to those the identity participates in (none for admins)."""
    if identity.is_admin:
        return []
    return [
        or_(
            models.Task.assigned_to_id == identity.user_id,
            models.Task.created_by_id == identity.user_id,
        )
    ]


def build_task_filters(identity: Identity, params: schemas.TaskListParams) -> List[ColumnElement]:
    """
    Build the list of criteria for a task listing; callers AND them together.

    Args:
        identity: Identity Context of the caller
        params: Validated caller filters

    Returns:
        List of SQLAlchemy boolean clauses
    """
    criteria = ownership_scope(identity)

    if params.search:
        pattern = f"%{escape_like(params.search.strip())}%"
        criteria.append(
            or_(
                models.Task.title.ilike(pattern, escape="\\"),
                models.Task.description.ilike(pattern, escape="\\"),
            )
        )

    if params.status:
        criteria.append(models.Task.status == params.status)
    if params.priority:
        criteria.append(models.Task.priority == params.priority)

    if params.assigned_to:
        if identity.is_admin:
            criteria.append(models.Task.assigned_to_id == params.assigned_to)
        else:
            logger.debug(f"Ignoring assignedTo filter from non-admin user {identity.user_id}")

    return criteria


def build_task_ordering(params: schemas.TaskListParams) -> list:
    """Order by the requested column, with task id as a deterministic tiebreaker."""
    column = SORT_COLUMNS[params.sort_by]
    direction = desc if params.sort_order == "desc" else asc
    return [direction(column), asc(models.Task.id)]


def build_pagination(page: int, limit: int, total: int) -> schemas.Pagination:
    """Pagination envelope; ``pages`` is ceil(total / limit)."""
    return schemas.Pagination(
        current=page,
        pages=math.ceil(total / limit),
        total=total,
        limit=limit,
    )


def query_visible_tasks(
    db: Session, identity: Identity, params: schemas.TaskListParams
) -> Tuple[List[models.Task], schemas.Pagination]:
    """
    Run a task listing for an identity.

    The total is counted over the same criteria as the page itself.

    Example:
        >>> tasks, pagination = query_visible_tasks(db, identity, schemas.TaskListParams(search="urgent"))
    """
    criteria = build_task_filters(identity, params)
    where = and_(*criteria) if criteria else None

    query = db.query(models.Task)
    if where is not None:
        query = query.filter(where)

    total = query.count()

    tasks = (
        query.options(
            selectinload(models.Task.assigned_to),
            selectinload(models.Task.created_by),
            selectinload(models.Task.attachments),
        )
        .order_by(*build_task_ordering(params))
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )

    logger.debug(
        f"User {identity.user_id} (role: {identity.role.value}) listed {len(tasks)} of {total} tasks "
        f"(page {params.page}, limit {params.limit})"
    )
    return tasks, build_pagination(params.page, params.limit, total)
