"""
Entity Registry - entity name to record class mapping.

Entity classes are registered explicitly, each under the name it
declares in `__entity__`. Registries can be merged, and entities can be
loaded from bundled YAML schema files:

    entities:
      Person:
        fields:
          name: {type: str}
          age: {type: int, optional: true}
          active: {type: bool, default: true}
"""

from datetime import date, datetime
from pathlib import Path
from types import NoneType, UnionType
from typing import Any, Iterable, Iterator, Union, get_args, get_origin
from uuid import UUID

import yaml
from pydantic import create_model
from pydantic.fields import FieldInfo

from dataman.core.config import get_logger
from dataman.core.errors import ResolutionError
from dataman.core.types import ManagedRecord

logger = get_logger("storage.registry")


SCHEMA_TYPES: dict[str, type] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "datetime": datetime,
    "date": date,
    "uuid": UUID,
    "list": list,
    "dict": dict,
}


def describe_field(info: FieldInfo) -> dict[str, Any]:
    """Describe a field's type for schema fingerprints."""
    annotation = info.annotation
    optional = False
    if get_origin(annotation) in (Union, UnionType):
        args = [arg for arg in get_args(annotation) if arg is not NoneType]
        optional = len(args) < len(get_args(annotation))
        names = [getattr(arg, "__name__", str(arg)) for arg in args]
        type_name = " | ".join(names)
    elif get_origin(annotation) is not None:
        type_name = str(annotation)
    else:
        type_name = getattr(annotation, "__name__", str(annotation))
    return {"type": type_name, "optional": optional, "required": info.is_required()}


class EntityRegistry:
    """
    Maps entity names to ManagedRecord classes.
    
    Used to instantiate typed records and to validate the fields a query
    refers to.
    """
    
    def __init__(self, entities: Iterable[type[ManagedRecord]] = ()):
        self._entities: dict[str, type[ManagedRecord]] = {}
        for record_class in entities:
            self.register(record_class)
    
    def register(self, record_class: type[ManagedRecord], name: str | None = None) -> type[ManagedRecord]:
        """Register an entity class. Returns the class, so this works as a decorator."""
        entity = name or record_class.__entity__
        if not entity:
            raise ResolutionError(f"{record_class.__name__} does not declare an entity name")
        existing = self._entities.get(entity)
        if existing is not None and existing is not record_class:
            raise ResolutionError(f"Entity {entity!r} is already registered to {existing.__name__}")
        self._entities[entity] = record_class
        return record_class
    
    def resolve(self, entity: type[ManagedRecord] | str) -> type[ManagedRecord]:
        """Resolve an entity class or name to the registered class."""
        if isinstance(entity, str):
            record_class = self._entities.get(entity)
            if record_class is None:
                raise ResolutionError(f"Unknown entity {entity!r}")
            return record_class
        name = getattr(entity, "__entity__", "")
        if self._entities.get(name) is not entity:
            raise ResolutionError(f"{getattr(entity, '__name__', entity)!r} is not a registered entity")
        return entity
    
    def entity_name(self, entity: type[ManagedRecord] | str) -> str:
        record_class = self.resolve(entity)
        for name, registered in self._entities.items():
            if registered is record_class:
                return name
        raise ResolutionError(f"Unknown entity {entity!r}")
    
    def fields(self, entity: type[ManagedRecord] | str) -> dict[str, FieldInfo]:
        return dict(self.resolve(entity).model_fields)
    
    def check_fields(self, entity: type[ManagedRecord] | str, names: Iterable[str]) -> None:
        """Raise ResolutionError if any name is not a field of the entity."""
        known = self.fields(entity)
        unknown = [name for name in names if name not in known]
        if unknown:
            raise ResolutionError(f"Unknown field(s) {', '.join(map(repr, unknown))} for entity {self.entity_name(entity)!r}")
    
    def fingerprint(self, entity: type[ManagedRecord] | str) -> dict[str, dict[str, Any]]:
        """Field descriptions used to detect schema changes."""
        return {name: describe_field(info) for name, info in self.fields(entity).items()}
    
    @property
    def names(self) -> list[str]:
        return list(self._entities)
    
    def __contains__(self, entity: object) -> bool:
        if isinstance(entity, str):
            return entity in self._entities
        return entity in self._entities.values()
    
    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)
    
    def __len__(self) -> int:
        return len(self._entities)
    
    # ==========================================
    # Merging and schema files
    # ==========================================
    
    @classmethod
    def merged(cls, *registries: "EntityRegistry") -> "EntityRegistry":
        """Merge registries into a new one. Conflicting names raise ResolutionError."""
        result = cls()
        for registry in registries:
            for name, record_class in registry._entities.items():
                result.register(record_class, name)
        return result
    
    @classmethod
    def load_schema(cls, path: Path) -> "EntityRegistry":
        """Build a registry from a YAML schema file."""
        try:
            document = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ResolutionError(f"Cannot read schema {path}: {e}") from e
        
        entities = document.get("entities") if isinstance(document, dict) else None
        if not isinstance(entities, dict):
            raise ResolutionError(f"Schema {path} has no 'entities' mapping")
        
        registry = cls()
        for name, spec in entities.items():
            registry.register(_build_entity(name, spec or {}, path), name)
        logger.debug(f"Loaded {len(registry)} entities from {path}")
        return registry
    
    @classmethod
    def from_schema_files(cls, paths: Iterable[Path], base: "EntityRegistry | None" = None) -> "EntityRegistry":
        """Merge a base registry with every schema file given."""
        registries = [base] if base is not None else []
        registries.extend(cls.load_schema(path) for path in paths)
        return cls.merged(*registries)


def _build_entity(name: str, spec: dict[str, Any], path: Path) -> type[ManagedRecord]:
    definitions: dict[str, Any] = {}
    for field_name, field_spec in (spec.get("fields") or {}).items():
        field_spec = field_spec or {}
        type_name = field_spec.get("type", "str")
        field_type = SCHEMA_TYPES.get(type_name)
        if field_type is None:
            raise ResolutionError(f"Schema {path}: unknown type {type_name!r} for {name}.{field_name}")
        if field_spec.get("optional", False):
            definitions[field_name] = (field_type | None, field_spec.get("default"))
        elif "default" in field_spec:
            definitions[field_name] = (field_type, field_spec["default"])
        else:
            definitions[field_name] = (field_type, ...)
    
    record_class = create_model(name, __base__=ManagedRecord, **definitions)
    record_class.__entity__ = name
    return record_class
