"""
Filter/predicate builder

Turns user filter lists and thresholds into a normalized, parameter-ready
predicate description. Values are never concatenated into query text here;
the catalog layer binds every value as a query parameter.
"""

import re
from typing import Optional, List, Tuple, FrozenSet, Iterable
from dataclasses import dataclass, field

from indexhealth.core.constants import (
    IndexKind,
    ScanMode,
    PAGES_PER_MB,
    PATTERN_MARKER,
)
from indexhealth.core.exceptions import ValidationError
from indexhealth.core.logger import get_logger
from indexhealth.models.filter_criteria import FilterCriteria

logger = get_logger('analysis.predicate')


def mb_to_pages(size_mb: float) -> int:
    """Convert a size in MB to 8 KB data pages"""
    return int(size_mb * PAGES_PER_MB)


def _strip_brackets(name: str) -> str:
    name = name.strip()
    if name.startswith('[') and name.endswith(']'):
        return name[1:-1].replace(']]', ']')
    return name


def like_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a T-SQL LIKE pattern (% and _) to a compiled regex"""
    parts = []
    for ch in pattern:
        if ch == '%':
            parts.append('.*')
        elif ch == '_':
            parts.append('.')
        else:
            parts.append(re.escape(ch))
    # Default collations are case-insensitive
    return re.compile('^' + ''.join(parts) + '$', re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ObjectMatchers:
    """One filter list split into exact identifiers and wildcard patterns"""

    names: Tuple[str, ...] = ()
    ids: Tuple[int, ...] = ()
    patterns: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.names or self.ids or self.patterns)

    def matches(self, schema_name: str, object_name: str, object_id: int) -> bool:
        """
        Exact names match "schema.object" or a bare object name; numeric
        ids match the object id; patterns match the bare object name.
        """
        if object_id in self.ids:
            return True

        qualified = f"{schema_name}.{object_name}".lower()
        for name in self.names:
            parts = [_strip_brackets(p) for p in name.split('.')]
            candidate = '.'.join(parts).lower()
            if len(parts) == 1 and candidate == object_name.lower():
                return True
            if candidate == qualified:
                return True

        return any(like_to_regex(p).match(object_name) for p in self.patterns)


@dataclass(frozen=True)
class SchemaMatchers:
    """Schema filter list split into exact names and LIKE patterns"""

    names: Tuple[str, ...] = ()
    patterns: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.names or self.patterns)

    def matches(self, schema_name: str) -> bool:
        if schema_name.lower() in (name.lower() for name in self.names):
            return True
        return any(like_to_regex(p).match(schema_name) for p in self.patterns)


@dataclass(frozen=True)
class FilterPredicate:
    """
    Normalized scan predicate.

    Exclude matchers are OR-ed and act as a veto; include schemas and
    include objects are each OR-ed internally and AND-ed together. An empty
    include side matches everything.
    """

    exclude_schemas: SchemaMatchers = field(default_factory=SchemaMatchers)
    exclude_objects: ObjectMatchers = field(default_factory=ObjectMatchers)
    include_schemas: SchemaMatchers = field(default_factory=SchemaMatchers)
    include_objects: ObjectMatchers = field(default_factory=ObjectMatchers)

    index_kinds: FrozenSet[IndexKind] = frozenset()
    fragmentation_threshold: float = 0.0
    min_index_pages: int = 0
    max_index_pages: int = 0
    predescribe_pages: int = 0
    scan_mode: ScanMode = ScanMode.LIMITED
    scan_missing_index: bool = False
    ignore_read_only_filegroups: bool = True
    ignore_permissions: bool = True

    @property
    def has_exclude(self) -> bool:
        return not self.exclude_schemas.is_empty or not self.exclude_objects.is_empty

    @property
    def has_include(self) -> bool:
        return not self.include_schemas.is_empty or not self.include_objects.is_empty

    def is_excluded(self, schema_name: str, object_name: str, object_id: int) -> bool:
        if self.exclude_schemas.matches(schema_name):
            return True
        return self.exclude_objects.matches(schema_name, object_name, object_id)

    def is_included(self, schema_name: str, object_name: str, object_id: int) -> bool:
        if not self.include_schemas.is_empty and not self.include_schemas.matches(schema_name):
            return False
        if not self.include_objects.is_empty:
            return self.include_objects.matches(schema_name, object_name, object_id)
        return True

    def matches(self, schema_name: str, object_name: str, object_id: int = 0) -> bool:
        """In-memory evaluation of the predicate; exclusion always wins"""
        if self.is_excluded(schema_name, object_name, object_id):
            return False
        return self.is_included(schema_name, object_name, object_id)


def _normalize(values: Iterable[str]) -> List[str]:
    result: List[str] = []
    for value in values or ():
        value = str(value).strip()
        if value and value not in result:
            result.append(value)
    return result


def _check_pattern(value: str, field_name: str) -> str:
    if not value.replace(PATTERN_MARKER, '').strip():
        raise ValidationError(
            f"Pattern '{value}' has no characters besides '{PATTERN_MARKER}'",
            field=field_name, value=value,
        )
    return value


def _split_object_list(values: Iterable[str], field_name: str) -> ObjectMatchers:
    names: List[str] = []
    ids: List[int] = []
    patterns: List[str] = []

    for value in _normalize(values):
        if PATTERN_MARKER in value:
            patterns.append(_check_pattern(value, field_name))
        elif value.isdigit():
            ids.append(int(value))
        else:
            names.append(value)

    return ObjectMatchers(names=tuple(names), ids=tuple(ids), patterns=tuple(patterns))


def _split_schema_list(values: Iterable[str], field_name: str) -> SchemaMatchers:
    names: List[str] = []
    patterns: List[str] = []
    for value in _normalize(values):
        if PATTERN_MARKER in value:
            patterns.append(_check_pattern(_strip_brackets(value), field_name))
        else:
            names.append(_strip_brackets(value))
    return SchemaMatchers(names=tuple(names), patterns=tuple(patterns))


def validate_criteria(criteria: FilterCriteria) -> None:
    """Raise ValidationError when thresholds or sizes are inverted"""
    if criteria.first_threshold >= criteria.second_threshold:
        raise ValidationError(
            f"First threshold ({criteria.first_threshold}) must be lower than "
            f"second threshold ({criteria.second_threshold})",
            field="first_threshold", value=criteria.first_threshold,
        )
    if criteria.min_index_size_mb > criteria.max_index_size_mb:
        raise ValidationError(
            f"Minimum index size ({criteria.min_index_size_mb} MB) exceeds "
            f"maximum ({criteria.max_index_size_mb} MB)",
            field="min_index_size_mb", value=criteria.min_index_size_mb,
        )
    for name in ("first_threshold", "second_threshold"):
        value = getattr(criteria, name)
        if not 0 <= value <= 100:
            raise ValidationError(f"{name} must be between 0 and 100", field=name, value=value)


def build_predicate(criteria: FilterCriteria,
                    index_kinds: Optional[Iterable[IndexKind]] = None) -> FilterPredicate:
    """
    Build a FilterPredicate from user criteria.

    Args:
        criteria: User filter criteria
        index_kinds: Kinds to scan; defaults to criteria.index_kinds. The
            catalog layer narrows this further by server capability.

    Raises:
        ValidationError: Empty pattern, inverted thresholds or sizes
    """
    validate_criteria(criteria)

    kinds = frozenset(index_kinds if index_kinds is not None else criteria.index_kinds)
    kinds = kinds - {IndexKind.MISSING_INDEX}

    predicate = FilterPredicate(
        exclude_schemas=_split_schema_list(criteria.exclude_schemas, "exclude_schemas"),
        exclude_objects=_split_object_list(criteria.exclude_objects, "exclude_objects"),
        include_schemas=_split_schema_list(criteria.include_schemas, "include_schemas"),
        include_objects=_split_object_list(criteria.include_objects, "include_objects"),
        index_kinds=kinds,
        fragmentation_threshold=criteria.first_threshold,
        min_index_pages=mb_to_pages(criteria.min_index_size_mb),
        max_index_pages=mb_to_pages(criteria.max_index_size_mb),
        predescribe_pages=mb_to_pages(criteria.predescribe_size_mb),
        scan_mode=criteria.scan_mode,
        scan_missing_index=criteria.scan_missing_index,
        ignore_read_only_filegroups=criteria.ignore_read_only_filegroups,
        ignore_permissions=criteria.ignore_permissions,
    )

    logger.debug(
        f"Predicate built: kinds={sorted(k.name for k in kinds)}, "
        f"include={predicate.has_include}, exclude={predicate.has_exclude}, "
        f"pages={predicate.min_index_pages}..{predicate.max_index_pages}"
    )
    return predicate
