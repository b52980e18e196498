# app/query.py
"""
Declarative listing views.

A ``ResourceView`` describes how one table is presented to API clients: which
of its columns are exposed, which related rows are looked up, and which
aggregate fields are derived from them. ``ResourceView.select`` turns that
description into a single SQLAlchemy statement:

* single-valued joins (an owner) become LEFT OUTER JOINs on an aliased target,
  restricted to the projected columns, and are collapsed back into one nested
  object (or ``None`` when the related row no longer exists);
* many-valued joins (likes, subscribers) become correlated ``count()``
  subqueries plus an ``EXISTS`` test for the current actor.

The view never windows results; see ``app.pagination``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import exists, false, func, select
from sqlalchemy.orm import aliased
from sqlalchemy.sql import Select

OWNER_PROJECTION = ("id", "username", "full_name", "avatar")


@dataclass(frozen=True)
class JoinSpec:
    target: Any
    local_key: str
    target_key: str
    as_field: str
    projection: Tuple[str, ...] = ()
    many: bool = False
    count_field: Optional[str] = None
    member_key: Optional[str] = None
    member_field: Optional[str] = None


def owner_join(target, local_key: str = "owner_id", as_field: str = "owner") -> JoinSpec:
    return JoinSpec(target, local_key, "id", as_field, projection=OWNER_PROJECTION)


def likes_join(target, target_key: str, local_key: str = "id") -> JoinSpec:
    return JoinSpec(
        target, local_key, target_key, "likes", many=True,
        count_field="like_count", member_key="liked_by", member_field="is_liked",
    )


@dataclass
class ResourceView:
    model: Any
    fields: Sequence[str]
    joins: Sequence[JoinSpec] = ()
    sort_fields: Mapping[str, str] = field(default_factory=dict)
    default_sort: str = "created_at"

    def _columns(self, actor_id, extra):
        model = self.model
        columns: Dict[str, Any] = {name: getattr(model, name) for name in self.fields}
        outer_joins = []

        for join in self.joins:
            local = getattr(model, join.local_key)
            if not join.many:
                target = aliased(join.target, name=f"{join.as_field}_details")
                outer_joins.append((target, local == getattr(target, join.target_key)))
                for name in join.projection:
                    columns[f"{join.as_field}__{name}"] = getattr(target, name)
                continue

            target_key = getattr(join.target, join.target_key)
            if join.count_field:
                columns[join.count_field] = (
                    select(func.count())
                    .select_from(join.target)
                    .where(target_key == local)
                    .scalar_subquery()
                )
            if join.member_field:
                if actor_id is None:
                    columns[join.member_field] = false()
                else:
                    member = getattr(join.target, join.member_key)
                    columns[join.member_field] = exists().where(target_key == local, member == actor_id)

        columns.update(extra or {})
        return columns, outer_joins

    def sort_key(self, sort_by: Optional[str]) -> str:
        if sort_by and sort_by in self.sort_fields:
            return self.sort_fields[sort_by]
        if sort_by and sort_by in self.sort_fields.values():
            return sort_by
        return self.default_sort

    def select(
        self,
        *where,
        actor_id=None,
        sort_by: Optional[str] = None,
        sort_type: Optional[str] = "desc",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Select:
        columns, outer_joins = self._columns(actor_id, extra)
        stmt = select(*(expr.label(name) for name, expr in columns.items())).select_from(self.model)
        for target, onclause in outer_joins:
            stmt = stmt.outerjoin(target, onclause)
        if where:
            stmt = stmt.where(*where)

        key = sort_by if extra and sort_by in extra else self.sort_key(sort_by)
        sort_expr = columns.get(key, getattr(self.model, key, None))
        if sort_expr is None:
            sort_expr = columns[self.default_sort]
        if (sort_type or "desc").lower() == "asc":
            return stmt.order_by(sort_expr.asc(), self.model.id.asc())
        return stmt.order_by(sort_expr.desc(), self.model.id.desc())

    def to_record(self, row) -> Dict[str, Any]:
        mapping = row._mapping if hasattr(row, "_mapping") else row
        record = {name: mapping[name] for name in self.fields}
        for join in self.joins:
            if not join.many:
                nested = {name: mapping[f"{join.as_field}__{name}"] for name in join.projection}
                # zero matches collapse to None
                record[join.as_field] = None if all(v is None for v in nested.values()) else nested
                continue
            if join.count_field:
                record[join.count_field] = int(mapping[join.count_field] or 0)
            if join.member_field:
                record[join.member_field] = bool(mapping[join.member_field])
        for name in mapping.keys():
            if name not in record and "__" not in name:
                record[name] = mapping[name]
        return record

    def to_records(self, rows: Iterable) -> List[Dict[str, Any]]:
        return [self.to_record(row) for row in rows]
