"""
Generic aggregate store and read-only child finder.

Every public operation runs in its own bounded transaction (``session_scope``).
Reads never lazy-load: relations are requested by name and loaded with one
batched ``selectin`` query per relationship hop, so loading N roots with M
children costs a fixed number of statements regardless of N and M.
"""
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from functools import reduce
from typing import (
    Any, Dict, FrozenSet, Generic, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar,
)

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from railcore.core.errors import (
    ConcurrencyConflict, IntegrityError, NotFoundError, ValidationError,
)
from railcore.db.session import SessionLocal, session_scope
from railcore.schemas import AuditedModel, RailModel, resequence

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=AuditedModel)
ChildT = TypeVar("ChildT", bound=RailModel)
E = TypeVar("E", bound=Enum)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_member(enum_type: Type[E], field: str, value: Any) -> E:
    """Coerce a filter argument to ``enum_type``; unknown values are a ValidationError."""
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ValidationError.for_field(field, value, f"unknown {enum_type.__name__}") from exc


def sequenced(entity_type: str, field: str, items: Sequence[Any], contiguous: bool) -> List[Any]:
    """
    Check and normalise the ``sequence_order`` of curve points / stop times.

    All orders absent: numbered 0..n-1 in list order. Otherwise every item must
    carry one, duplicates raise IntegrityError and, when ``contiguous``, the
    orders must be exactly 0..n-1.
    """
    orders = [item.sequence_order for item in items]
    if all(o is None for o in orders):
        return resequence(items)
    if any(o is None for o in orders):
        raise ValidationError.for_field(
            field, orders, "sequence_order must be set on every item or on none")
    duplicates = sorted({o for o in orders if orders.count(o) > 1})
    if duplicates:
        raise IntegrityError(f"Duplicate sequence_order {duplicates} in {entity_type}.{field}")
    if contiguous and sorted(orders) != list(range(len(orders))):
        raise ValidationError.for_field(
            field, orders, "sequence_order must be contiguous from 0")
    return sorted(items, key=lambda item: item.sequence_order)


class AggregateStore(Generic[SchemaT]):
    """
    Persistence for one aggregate root type.

    Subclasses declare:
        entity_type:  name used in errors and logs
        row_type:     ORM class of the root
        schema_type:  pydantic class of the aggregate
        relations:    relation name -> chain of relationship attributes to load
        owned:        relation name -> (child ORM class, owner foreign-key column)

    and implement ``_scalar_values`` and ``_child_rows``.
    """

    entity_type: str = "Aggregate"
    row_type: Type[Any]
    schema_type: Type[SchemaT]
    relations: Dict[str, Tuple[Any, ...]] = {}
    owned: Dict[str, Tuple[Type[Any], str]] = {}

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    @property
    def relation_names(self) -> FrozenSet[str]:
        return frozenset(self.relations)

    # ------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------

    def _scalar_values(self, aggregate: SchemaT) -> Dict[str, Any]:
        """Root columns written on create and on every update."""
        raise NotImplementedError

    def _child_rows(self, name: str, root_id: str, aggregate: SchemaT,
                    now: datetime, fresh_ids: bool) -> List[Any]:
        """ORM rows for owned relation ``name``, foreign key already set."""
        raise NotImplementedError

    def _write_references(self, session: Session, root_id: str,
                          aggregate: SchemaT, replace: bool) -> None:
        """Store weak-reference id lists held by the root (none by default)."""

    def _prepare(self, aggregate: SchemaT, writing: FrozenSet[str]) -> SchemaT:
        """Normalise the owned collections named in ``writing`` before they are stored."""
        return aggregate

    def _before_create(self, session: Session, aggregate: SchemaT) -> None:
        pass

    def _create_values(self, aggregate: SchemaT) -> Dict[str, Any]:
        """Root columns written once on create and never updated."""
        return {}

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _validated(self, aggregate: Any, writing: FrozenSet[str]) -> SchemaT:
        data = aggregate.model_dump() if isinstance(aggregate, BaseModel) else aggregate
        try:
            validated = self.schema_type.model_validate(data)
        except PydanticValidationError as exc:
            logger.warning(f"Rejected invalid {self.entity_type}: {exc.error_count()} error(s)")
            raise ValidationError.from_pydantic(self.entity_type, exc) from exc
        return self._prepare(validated, writing)

    def _check_relations(self, relations: Optional[Iterable[str]]) -> FrozenSet[str]:
        if isinstance(relations, str):
            relations = (relations,)
        requested = frozenset(relations or ())
        unknown = requested - self.relation_names
        if unknown:
            raise ValidationError(
                f"Unknown {self.entity_type} relation(s): {', '.join(sorted(unknown))}")
        return requested

    def _loader(self, name: str):
        first, *rest = self.relations[name]
        return reduce(lambda option, attr: option.selectinload(attr), rest, selectinload(first))

    def _fetch(self, session: Session, criteria: Sequence[Any], relations: FrozenSet[str],
               order_by: Optional[Sequence[Any]] = None) -> List[SchemaT]:
        stmt = select(self.row_type).where(*criteria)
        for name in sorted(relations):
            stmt = stmt.options(self._loader(name))
        stmt = stmt.order_by(*(order_by or (self.row_type.id,)))
        rows = session.scalars(stmt).all()
        logger.debug(f"Loaded {len(rows)} {self.entity_type} row(s) with relations {sorted(relations)}")
        return [self.schema_type.model_validate(row) for row in rows]

    def _exists(self, session: Session, entity_id: str) -> bool:
        return bool(session.scalar(select(exists().where(self.row_type.id == entity_id))))

    def _replace_children(self, session: Session, root_id: str, name: str,
                          aggregate: SchemaT, now: datetime) -> None:
        child_type, fk = self.owned[name]
        session.execute(
            delete(child_type)
            .where(getattr(child_type, fk) == root_id)
            .execution_options(synchronize_session=False)
        )
        session.add_all(self._child_rows(name, root_id, aggregate, now, fresh_ids=True))

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def create(self, aggregate: Any) -> SchemaT:
        """Persist the root and all of its owned children in one transaction."""
        prepared = self._validated(aggregate, frozenset(self.owned))
        root_id = prepared.id or new_id()
        now = utcnow()
        with session_scope(self._session_factory) as session:
            self._before_create(session, prepared)
            session.add(self.row_type(
                id=root_id, created_at=now, updated_at=now, version=1,
                **self._create_values(prepared), **self._scalar_values(prepared),
            ))
            session.flush()
            self._write_references(session, root_id, prepared, replace=False)
            for name in self.owned:
                session.add_all(self._child_rows(name, root_id, prepared, now, fresh_ids=False))
            session.flush()
            session.expunge_all()
            saved = self._fetch(session, [self.row_type.id == root_id], self.relation_names)[0]
        logger.info(f"Created {self.entity_type} {root_id}")
        return saved

    def update(self, aggregate: Any, replace: Iterable[str] = ()) -> SchemaT:
        """
        Compare-and-swap update of the root's scalars and weak-reference lists.

        The submitted ``version`` must equal the stored one, otherwise
        ConcurrencyConflict is raised and nothing changes. Relations named in
        ``replace`` are deleted and reinserted from the submitted aggregate
        inside the same transaction; other owned collections are left alone.
        """
        to_replace = self._check_relations(replace)
        prepared = self._validated(aggregate, to_replace)
        if prepared.id is None:
            raise ValidationError.for_field("id", None, "required for update")
        if prepared.version is None:
            raise ValidationError.for_field("version", None, "required for update")
        unowned = to_replace - frozenset(self.owned)
        if unowned:
            raise ValidationError(f"{self.entity_type} relation(s) {sorted(unowned)} cannot be replaced")

        now = utcnow()
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(self.row_type)
                .where(self.row_type.id == prepared.id, self.row_type.version == prepared.version)
                .values(version=self.row_type.version + 1, updated_at=now,
                        **self._scalar_values(prepared))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if not self._exists(session, prepared.id):
                    raise NotFoundError(self.entity_type, prepared.id)
                logger.warning(
                    f"Concurrency conflict on {self.entity_type} {prepared.id} "
                    f"(stale version {prepared.version})"
                )
                raise ConcurrencyConflict(self.entity_type, prepared.id, prepared.version)
            self._write_references(session, prepared.id, prepared, replace=True)
            for name in sorted(to_replace):
                self._replace_children(session, prepared.id, name, prepared, now)
            session.flush()
            session.expunge_all()
            saved = self._fetch(session, [self.row_type.id == prepared.id], to_replace)[0]
        logger.info(f"Updated {self.entity_type} {saved.id} to version {saved.version}")
        return saved

    def delete_by_id(self, entity_id: str) -> None:
        """Delete the root; owned children go with it, weak references elsewhere dangle."""
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(self.row_type)
                .where(self.row_type.id == entity_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(self.entity_type, entity_id)
        logger.info(f"Deleted {self.entity_type} {entity_id}")

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def get_by_id(self, entity_id: str) -> Optional[SchemaT]:
        """Root only; owned collections come back as None (not loaded)."""
        return self.get_with_relations(entity_id, ())

    def get_with_relations(self, entity_id: str,
                           relations: Optional[Iterable[str]] = None) -> Optional[SchemaT]:
        """Root plus the named owned collections (all of them when ``relations`` is None)."""
        requested = self.relation_names if relations is None else self._check_relations(relations)
        with session_scope(self._session_factory) as session:
            found = self._fetch(session, [self.row_type.id == entity_id], requested)
        return found[0] if found else None

    def require(self, entity_id: str, relations: Iterable[str] = ()) -> SchemaT:
        aggregate = self.get_with_relations(entity_id, relations)
        if aggregate is None:
            raise NotFoundError(self.entity_type, entity_id)
        return aggregate

    def exists_by_id(self, entity_id: str) -> bool:
        with session_scope(self._session_factory) as session:
            return self._exists(session, entity_id)

    def get_many(self, entity_ids: Iterable[str],
                 relations: Iterable[str] = ()) -> List[SchemaT]:
        """Batch lookup by id; ids that do not exist are silently absent."""
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return []
        return self.find_with_relations(self.row_type.id.in_(ids), relations=relations)

    def list_all_with_relations(self, relations: Optional[Iterable[str]] = None) -> List[SchemaT]:
        return self.find_with_relations(relations=relations)

    def find(self, *criteria: Any, order_by: Optional[Sequence[Any]] = None) -> List[SchemaT]:
        """Roots matching every filter expression, without owned collections."""
        return self.find_with_relations(*criteria, relations=(), order_by=order_by)

    def find_with_relations(self, *criteria: Any, relations: Optional[Iterable[str]] = None,
                            order_by: Optional[Sequence[Any]] = None) -> List[SchemaT]:
        requested = self.relation_names if relations is None else self._check_relations(relations)
        with session_scope(self._session_factory) as session:
            return self._fetch(session, criteria, requested, order_by)

    def find_one(self, *criteria: Any, relations: Iterable[str] = ()) -> Optional[SchemaT]:
        found = self.find_with_relations(*criteria, relations=relations)
        return found[0] if found else None

    def count(self, *criteria: Any) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(self.row_type).where(*criteria))


class ChildFinder(Generic[ChildT]):
    """
    Read-only queries over an owned child type.

    Children are only ever written through their root's store; this exists
    for lookups that cut across roots (e.g. every signal protecting a track).
    """

    entity_type: str = "Child"
    row_type: Type[Any]
    schema_type: Type[ChildT]

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def _default_order(self) -> Tuple[Any, ...]:
        return (self.row_type.id,)

    def find(self, *criteria: Any, order_by: Optional[Sequence[Any]] = None) -> List[ChildT]:
        stmt = (
            select(self.row_type)
            .where(*criteria)
            .order_by(*(order_by or self._default_order()))
        )
        with session_scope(self._session_factory) as session:
            rows = session.scalars(stmt).all()
            return [self.schema_type.model_validate(row) for row in rows]

    def get_by_id(self, child_id: Any) -> Optional[ChildT]:
        found = self.find(self.row_type.id == child_id)
        return found[0] if found else None
