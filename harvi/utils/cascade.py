"""
Cascade engine for the content hierarchy.

Deletes walk the tree explicitly (collect every descendant id first, then
delete bottom-up) and renames repoint the foreign key of direct children.
Both run inside a single database transaction under a deadline; any failure
after the first staged write rolls the whole unit back.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.config import settings
from ..core.exceptions import HarviError, NotFoundError, TransactionError
from .hierarchy import CHILD_LINKS, model_for, display_name
from .validation import validate_unique
import logging

logger = logging.getLogger(__name__)

DELETE_CHUNK_SIZE = 500

FetchChildren = Callable[[str, str, List[str]], Awaitable[List[str]]]


@dataclass
class CascadePlan:
    kind: str
    root_id: str
    ids: Dict[str, List[str]] = field(default_factory=dict)

    def levels(self) -> List[str]:
        """Kinds covered by the plan, root first."""
        return list(self.ids)

    def deletion_order(self) -> List[str]:
        return list(reversed(self.levels()))

    def summary(self) -> Dict[str, int]:
        return {kind: len(ids) for kind, ids in self.ids.items()}


async def collect_descendants(kind: str, root_id: str, fetch_children: FetchChildren) -> CascadePlan:
    """
    Breadth-first walk from one entity down to the leaves.

    `fetch_children(child_kind, fk_column, parent_ids)` returns the ids of
    the children whose `fk_column` is in `parent_ids`.
    """
    plan = CascadePlan(kind=kind, root_id=root_id)
    plan.ids[kind] = [root_id]

    parent_kind, parent_ids = kind, [root_id]
    while CHILD_LINKS.get(parent_kind) and parent_ids:
        child_kind, fk_column = CHILD_LINKS[parent_kind]
        child_ids = list(await fetch_children(child_kind, fk_column, parent_ids))
        plan.ids[child_kind] = child_ids
        parent_kind, parent_ids = child_kind, child_ids

    return plan


def db_children_fetcher(db: AsyncSession) -> FetchChildren:
    async def fetch_children(child_kind: str, fk_column: str, parent_ids: List[str]) -> List[str]:
        model = model_for(child_kind)
        result = await db.execute(
            select(model.id)
            .filter(getattr(model, fk_column).in_(parent_ids))
            .order_by(model.created_at, model.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    return fetch_children


async def lock_entity(db: AsyncSession, kind: str, entity_id: str):
    model = model_for(kind)
    result = await db.execute(select(model).filter(model.id == entity_id).with_for_update())
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundError(f"{display_name(kind)} with ID {entity_id} not found", field="id", id=entity_id)
    return entity


async def run_atomically(db: AsyncSession, work: Callable[[], Awaitable], description: str,
                         timeout: Optional[float] = None):
    """
    Run `work` and commit, or roll back everything it staged.

    Domain errors are re-raised as-is after the rollback. Anything else,
    including the deadline expiring, becomes a retryable TransactionError.
    """
    if timeout is None:
        timeout = settings.cascade_timeout_seconds
    try:
        result = await asyncio.wait_for(work(), timeout=timeout)
        await db.commit()
        return result
    except HarviError:
        await db.rollback()
        raise
    except asyncio.TimeoutError:
        await db.rollback()
        logger.error(f"Timed out after {timeout}s while trying to {description}; rolled back")
        raise TransactionError(
            f"Could not {description} within {timeout} seconds; no changes were applied",
            code="Timeout",
        )
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to {description}; rolled back: {e}", exc_info=True)
        raise TransactionError(f"Could not {description}; no changes were applied") from e


async def _delete_ids(db: AsyncSession, kind: str, ids: List[str]) -> None:
    model = model_for(kind)
    for start in range(0, len(ids), DELETE_CHUNK_SIZE):
        chunk = ids[start:start + DELETE_CHUNK_SIZE]
        await db.execute(delete(model).filter(model.id.in_(chunk)).execution_options(synchronize_session=False))


async def cascade_delete(db: AsyncSession, kind: str, entity_id: str,
                         timeout: Optional[float] = None) -> Dict[str, int]:
    """Delete an entity and everything transitively below it, all or nothing."""

    async def work() -> CascadePlan:
        await lock_entity(db, kind, entity_id)
        plan = await collect_descendants(kind, entity_id, db_children_fetcher(db))
        for level in plan.deletion_order():
            await _delete_ids(db, level, plan.ids[level])
        return plan

    plan = await run_atomically(db, work, f"delete {kind} '{entity_id}'", timeout)
    # Bulk deletes bypass the identity map
    db.expunge_all()
    logger.info(f"Deleted {kind} {entity_id} with cascade: {plan.summary()}")
    return plan.summary()


async def stage_rename(db: AsyncSession, kind: str, entity, new_id: str) -> int:
    """
    Give `entity` a new id and repoint the foreign key of its direct children.

    Children are never deleted. Returns the number of children repointed.
    Does not commit; callers run it inside run_atomically.
    """
    old_id = entity.id
    if new_id == old_id:
        return 0

    await validate_unique(db, kind, new_id)

    repointed = 0
    link = CHILD_LINKS.get(kind)
    if link:
        child_kind, fk_column = link
        child_model = model_for(child_kind)
        result = await db.execute(
            select(child_model)
            .filter(getattr(child_model, fk_column) == old_id)
            .with_for_update()
        )
        for child in result.scalars().all():
            setattr(child, fk_column, new_id)
            child.touch()
            repointed += 1

    entity.id = new_id
    entity.touch()
    await db.flush()
    return repointed


async def cascade_rename(db: AsyncSession, kind: str, old_id: str, new_id: str,
                         timeout: Optional[float] = None):
    """Rename an entity id and rewrite the matching foreign key in every direct child."""

    async def work():
        entity = await lock_entity(db, kind, old_id)
        repointed = await stage_rename(db, kind, entity, new_id)
        return entity, repointed

    entity, repointed = await run_atomically(db, work, f"rename {kind} '{old_id}' to '{new_id}'", timeout)
    logger.info(f"Renamed {kind} {old_id} -> {new_id}, repointed {repointed} children")
    return entity
