"""Columnar entity/component/relation store.

Entities are integers allocated from 1 upward and never reused. Components
live in one column (``Dict[entity, record]``) per ``ComponentKind``. Relations
are kept as a forward index ``source -> {target: meta}`` plus a reverse index
``target -> {sources}`` per ``RelationKind``.

The store has no locking. Each method is atomic with respect to the asyncio
loop because none of them await; callers must not assume consistency across
several calls when other coroutines may run in between.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .components import COMPONENT_TYPES, ComponentKind
from .relations import RELATION_SPECS, RelationKind, RelationSpec


class WorldStore:
    """In-memory world model shared by every system."""

    def __init__(
        self,
        component_types: Mapping[ComponentKind, type] = COMPONENT_TYPES,
        relation_specs: Mapping[RelationKind, RelationSpec] = RELATION_SPECS,
    ) -> None:
        self.component_types: Dict[ComponentKind, type] = dict(component_types)
        self.relation_specs: Dict[RelationKind, RelationSpec] = dict(relation_specs)
        # Reverse lookup built once; add_component resolves kinds through it.
        self._kind_by_type: Dict[type, ComponentKind] = {
            record_type: kind for kind, record_type in self.component_types.items()
        }
        self._next_id = 1
        self.clear()

    def clear(self) -> None:
        """Drop every entity, component, and relation. Ids are not reused."""
        self._entities: Set[int] = set()
        self._columns: Dict[ComponentKind, Dict[int, Any]] = {
            kind: {} for kind in self.component_types
        }
        self._forward: Dict[RelationKind, Dict[int, Dict[int, Any]]] = {
            kind: {} for kind in self.relation_specs
        }
        self._reverse: Dict[RelationKind, Dict[int, Set[int]]] = {
            kind: {} for kind in self.relation_specs
        }

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self) -> int:
        eid = self._next_id
        self._next_id += 1
        self._entities.add(eid)
        return eid

    def entity_exists(self, eid: int) -> bool:
        return eid in self._entities

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    def destroy_entity(self, eid: int) -> bool:
        """Remove an entity with all its components and relations.

        Sources related to ``eid`` through a relation declared
        ``cascade_on_target_removal`` are destroyed as well. Returns False when
        the entity does not exist.
        """
        if eid not in self._entities:
            return False

        pending = [eid]
        while pending:
            current = pending.pop()
            if current not in self._entities:
                continue

            for kind, spec in self.relation_specs.items():
                if spec.cascade_on_target_removal:
                    pending.extend(self._reverse[kind].get(current, ()))

            for column in self._columns.values():
                column.pop(current, None)

            for kind in self.relation_specs:
                self._drop_relations_of(kind, current)

            self._entities.discard(current)

        return True

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def kind_of(self, record: Any) -> ComponentKind:
        try:
            return self._kind_by_type[type(record)]
        except KeyError:
            raise TypeError(f"{type(record).__name__} is not a registered component type") from None

    def add_component(self, eid: int, record: Any) -> None:
        """Attach ``record`` to ``eid``, replacing any record of the same kind."""
        if eid not in self._entities:
            raise KeyError(f"Entity {eid} does not exist")
        self._columns[self.kind_of(record)][eid] = record

    def remove_component(self, eid: int, kind: ComponentKind) -> bool:
        return self._columns[kind].pop(eid, None) is not None

    def get_component(self, eid: int, kind: ComponentKind) -> Optional[Any]:
        return self._columns[kind].get(eid)

    def has_component(self, eid: int, kind: ComponentKind) -> bool:
        return eid in self._columns[kind]

    def query(self, *kinds: ComponentKind) -> List[int]:
        """Entities holding every component in ``kinds``, ascending by id."""
        if not kinds:
            return sorted(self._entities)
        columns = sorted((self._columns[kind] for kind in kinds), key=len)
        smallest, rest = columns[0], columns[1:]
        return sorted(eid for eid in smallest if all(eid in column for column in rest))

    def column(self, kind: ComponentKind) -> Dict[int, Any]:
        """Read-only view intent: iterate a copy if you mutate while looping."""
        return self._columns[kind]

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def add_relation(
        self,
        kind: RelationKind,
        source: int,
        target: int,
        meta: Any = None,
    ) -> None:
        """Link ``source`` to ``target``.

        Exclusive kinds drop any previous target of ``source`` first, so the
        source never holds two instances at once.
        """
        for eid in (source, target):
            if eid not in self._entities:
                raise KeyError(f"Entity {eid} does not exist")

        spec = self.relation_specs[kind]
        targets = self._forward[kind].setdefault(source, {})
        if spec.exclusive:
            for previous in list(targets):
                if previous != target:
                    self._unlink(kind, source, previous)
        targets[target] = meta
        self._reverse[kind].setdefault(target, set()).add(source)

    def remove_relation(
        self, kind: RelationKind, source: int, target: Optional[int] = None
    ) -> bool:
        """Remove one link, or every link of ``source`` when target is None."""
        targets = self._forward[kind].get(source)
        if not targets:
            return False
        if target is None:
            for existing in list(targets):
                self._unlink(kind, source, existing)
            return True
        if target not in targets:
            return False
        self._unlink(kind, source, target)
        return True

    def has_relation(
        self, kind: RelationKind, source: int, target: Optional[int] = None
    ) -> bool:
        targets = self._forward[kind].get(source)
        if not targets:
            return False
        return True if target is None else target in targets

    def get_relation_targets(self, kind: RelationKind, source: int) -> List[int]:
        return list(self._forward[kind].get(source, {}))

    def get_relation_target(self, kind: RelationKind, source: int) -> Optional[int]:
        """Single target of an exclusive relation, or None."""
        targets = self._forward[kind].get(source)
        if not targets:
            return None
        return next(iter(targets))

    def get_relation_sources(self, kind: RelationKind, target: int) -> List[int]:
        return sorted(self._reverse[kind].get(target, ()))

    def get_relation_meta(self, kind: RelationKind, source: int, target: int) -> Any:
        return self._forward[kind].get(source, {}).get(target)

    def entities_with_relation(self, kind: RelationKind) -> List[int]:
        return sorted(source for source, targets in self._forward[kind].items() if targets)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _unlink(self, kind: RelationKind, source: int, target: int) -> None:
        targets = self._forward[kind].get(source)
        if targets is not None:
            targets.pop(target, None)
            if not targets:
                del self._forward[kind][source]
        sources = self._reverse[kind].get(target)
        if sources is not None:
            sources.discard(source)
            if not sources:
                del self._reverse[kind][target]

    def _drop_relations_of(self, kind: RelationKind, eid: int) -> None:
        for target in list(self._forward[kind].get(eid, {})):
            self._unlink(kind, eid, target)
        for source in list(self._reverse[kind].get(eid, ())):
            self._unlink(kind, source, eid)

    def iter_entities(self) -> Iterable[int]:
        return iter(sorted(self._entities))
