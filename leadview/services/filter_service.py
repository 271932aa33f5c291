import math
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..config import settings
from ..schemas.errors import ConfigurationError, UnmatchedFieldWarning
from ..schemas.filter import (
    Conjunction,
    DateBucket,
    FieldCatalog,
    FieldDefinition,
    FilterGroup,
    FilterOperator,
    FilterRule,
    PageRequest,
    QueryResult,
    Record,
    SortDirection,
    SortKind,
    SortRule,
    ValueKind,
)
from ..utils.logger import setup_logger

logger = setup_logger("filter_service", settings.logging.log_file("filter"))

Predicate = Callable[[Record], bool]

EMPTY_OPERATORS = {FilterOperator.IS_EMPTY.value, FilterOperator.IS_NOT_EMPTY.value}

TEXT_OPERATORS = [
    FilterOperator.CONTAINS,
    FilterOperator.NOT_CONTAINS,
    FilterOperator.EQUALS,
    FilterOperator.NOT_EQUALS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
    FilterOperator.IS_EMPTY,
    FilterOperator.IS_NOT_EMPTY,
]

SELECT_OPERATORS = [
    FilterOperator.HAS_ANY_OF,
    FilterOperator.HAS_NONE_OF,
    FilterOperator.IS,
    FilterOperator.IS_NOT,
]

# "is" and "has_any_of" are aliases of "within" for date fields
DATE_OPERATORS = [
    FilterOperator.WITHIN,
    FilterOperator.IS,
    FilterOperator.HAS_ANY_OF,
]


def _always(result: bool) -> Predicate:
    return lambda record: result


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def _coerce_text(value: Any) -> str:
    """String form of a field value, matching how the dashboard prints it"""
    if _is_blank(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _collect(stamps: List[Optional[int]], parsed: pd.Series) -> None:
    for position, stamp in zip(parsed.index, parsed):
        if not pd.isna(stamp):
            stamps[position] = stamp.value


def parse_timestamps(values: Sequence[Any]) -> List[Optional[int]]:
    """Parse a column of field values into UTC epoch nanoseconds.

    Numbers are epoch seconds and dates are taken as-is, naive ones as UTC.
    Strings go through ISO-8601 first, then the per-value parser for
    whatever that left unparsed. Blank or unparseable values map to None.
    """
    series = pd.Series(list(values), dtype=object)
    stamps: List[Optional[int]] = [None] * len(series)
    if series.empty:
        return stamps

    is_number = series.map(lambda v: pd.api.types.is_number(v) and not pd.api.types.is_bool(v))
    is_datetime = series.map(lambda v: isinstance(v, date))
    is_text = series.map(lambda v: isinstance(v, str) and v != "")

    if is_number.any():
        numbers = pd.to_numeric(series[is_number], errors="coerce")
        _collect(stamps, pd.to_datetime(numbers, unit="s", utc=True, errors="coerce"))
    if is_datetime.any():
        _collect(stamps, pd.to_datetime(series[is_datetime], utc=True, errors="coerce"))
    if is_text.any():
        text = series[is_text]
        parsed = pd.to_datetime(text, utc=True, errors="coerce", format="ISO8601")
        _collect(stamps, parsed)
        leftover = text[parsed.isna()]
        if not leftover.empty:
            _collect(stamps, pd.to_datetime(leftover, utc=True, errors="coerce", format="mixed"))
    return stamps


def _to_number(value: Any) -> float:
    if _is_blank(value):
        return 0.0
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def _as_utc(now: Optional[datetime]) -> pd.Timestamp:
    current = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
    if current.tzinfo is None:
        current = current.tz_localize("UTC")
    return current


class TimestampColumns:
    """Date field values of a record set, parsed once per field.

    Records are indexed by identity, so the set must stay alive while the
    columns are in use. A record outside the set is parsed on its own.
    """

    def __init__(self, records: Iterable[Record], resolve: Callable[[Record, FieldDefinition], Any]):
        self.records = list(records)
        self.resolve = resolve
        self._columns: Dict[str, Dict[int, Optional[int]]] = {}

    def column(self, definition: FieldDefinition) -> Dict[int, Optional[int]]:
        parsed = self._columns.get(definition.key)
        if parsed is None:
            stamps = parse_timestamps([self.resolve(record, definition) for record in self.records])
            parsed = {id(record): stamp for record, stamp in zip(self.records, stamps)}
            self._columns[definition.key] = parsed
            logger.debug(f"Parsed {len(parsed)} timestamps for field {definition.key}")
        return parsed

    def get(self, record: Record, definition: FieldDefinition) -> Optional[int]:
        parsed = self.column(definition)
        key = id(record)
        if key in parsed:
            return parsed[key]
        return parse_timestamps([self.resolve(record, definition)])[0]


class FilterService:
    def __init__(self):
        self.type_handlers = {
            ValueKind.TEXT: self._handle_text,
            ValueKind.SELECT: self._handle_select,
            ValueKind.DATE_BUCKET: self._handle_date_bucket,
        }
        self.sort_keys = {
            SortKind.TEXT: self._text_sort_key,
            SortKind.NUMBER: self._number_sort_key,
            SortKind.TIMESTAMP: self._timestamp_sort_key,
        }

        self.type_operators = {
            ValueKind.TEXT: TEXT_OPERATORS,
            ValueKind.SELECT: SELECT_OPERATORS + [FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY],
            ValueKind.DATE_BUCKET: DATE_OPERATORS + [FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY],
        }

        self.operator_descriptions = {
            FilterOperator.CONTAINS: "Contains text",
            FilterOperator.NOT_CONTAINS: "Does not contain text",
            FilterOperator.EQUALS: "Is",
            FilterOperator.NOT_EQUALS: "Is not",
            FilterOperator.STARTS_WITH: "Starts with",
            FilterOperator.ENDS_WITH: "Ends with",
            FilterOperator.IS_EMPTY: "Is empty",
            FilterOperator.IS_NOT_EMPTY: "Is not empty",
            FilterOperator.HAS_ANY_OF: "Has any of",
            FilterOperator.HAS_NONE_OF: "Has none of",
            FilterOperator.IS: "Is",
            FilterOperator.IS_NOT: "Is not",
            FilterOperator.WITHIN: "Within the last",
        }

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    def resolve_value(self, record: Record, definition: FieldDefinition) -> Any:
        """Read a field from a record, falling back to composed sources"""
        value = record.get(definition.source_key)
        if _is_blank(value) and definition.fallback_sources:
            parts = [_coerce_text(record.get(key)) for key in definition.fallback_sources]
            value = " ".join(part for part in parts if part)
        return value

    # ------------------------------------------------------------------
    # Per-kind predicate builders
    # ------------------------------------------------------------------

    def _handle_text(self, definition: FieldDefinition, operator: str, value: str, now: pd.Timestamp, timestamps: TimestampColumns) -> Predicate:
        """Case-insensitive string comparisons"""
        needle = value.lower()
        comparisons = {
            FilterOperator.CONTAINS.value: lambda text: needle in text,
            FilterOperator.NOT_CONTAINS.value: lambda text: needle not in text,
            FilterOperator.EQUALS.value: lambda text: text == needle,
            FilterOperator.NOT_EQUALS.value: lambda text: text != needle,
            FilterOperator.STARTS_WITH.value: lambda text: text.startswith(needle),
            FilterOperator.ENDS_WITH.value: lambda text: text.endswith(needle),
        }
        compare = comparisons.get(operator)
        if compare is None:
            logger.debug(f"Operator {operator} is not valid for text field {definition.key}")
            return _always(False)

        def predicate(record: Record) -> bool:
            return compare(_coerce_text(self.resolve_value(record, definition)).lower())

        return predicate

    def _handle_select(self, definition: FieldDefinition, operator: str, value: str, now: pd.Timestamp, timestamps: TimestampColumns) -> Predicate:
        """Single-value equality against the option string"""
        if operator in (FilterOperator.HAS_ANY_OF.value, FilterOperator.IS.value):
            expected = True
        elif operator in (FilterOperator.HAS_NONE_OF.value, FilterOperator.IS_NOT.value):
            expected = False
        else:
            logger.debug(f"Operator {operator} is not valid for select field {definition.key}")
            return _always(False)

        def predicate(record: Record) -> bool:
            raw = self.resolve_value(record, definition)
            if _is_blank(raw) and definition.default is not None:
                raw = definition.default
            return (_coerce_text(raw) == value) == expected

        return predicate

    def _handle_date_bucket(self, definition: FieldDefinition, operator: str, value: str, now: pd.Timestamp, timestamps: TimestampColumns) -> Predicate:
        """Relative window ending at ``now``"""
        if operator not in {op.value for op in DATE_OPERATORS}:
            logger.debug(f"Operator {operator} is not valid for date field {definition.key}")
            return _always(False)

        cutoff = self.bucket_cutoff(value, now)
        threshold = None if cutoff is None else cutoff.value

        def predicate(record: Record) -> bool:
            stamp = timestamps.get(record, definition)
            if stamp is None:
                return False
            return threshold is None or stamp >= threshold

        return predicate

    def bucket_cutoff(self, bucket: str, now: Optional[datetime] = None) -> Optional[pd.Timestamp]:
        """Earliest timestamp inside a relative date bucket, None if unknown"""
        current = _as_utc(now)
        if bucket == DateBucket.TODAY.value:
            return current.normalize()
        days = {
            DateBucket.LAST_7_DAYS.value: 7,
            DateBucket.LAST_30_DAYS.value: 30,
            DateBucket.LAST_90_DAYS.value: 90,
        }.get(bucket)
        if days is None:
            return None
        return current - pd.Timedelta(days=days)

    # ------------------------------------------------------------------
    # Rule compilation
    # ------------------------------------------------------------------

    def compile_rule(
        self,
        rule: FilterRule,
        catalog: FieldCatalog,
        now: Optional[datetime] = None,
        unmatched: Optional[List[str]] = None,
        timestamps: Optional[TimestampColumns] = None,
    ) -> Predicate:
        """Turn one filter rule into a record predicate.

        Fallbacks are fixed per operator: an unknown field is vacuously empty,
        so ``is_empty`` matches and every other operator does not; a rule with
        no value never narrows the result.
        """
        operator = rule.operator
        definition = catalog.get(rule.field)

        if operator in EMPTY_OPERATORS:
            wants_empty = operator == FilterOperator.IS_EMPTY.value
            if definition is None:
                self._note_unmatched(rule.field, unmatched)
                return _always(wants_empty)
            return lambda record: _is_blank(self.resolve_value(record, definition)) == wants_empty

        if not rule.value:
            return _always(True)

        if definition is None:
            self._note_unmatched(rule.field, unmatched)
            return _always(False)

        if timestamps is None:
            timestamps = TimestampColumns([], self.resolve_value)
        handler = self.type_handlers[definition.value_kind]
        return handler(definition, operator, rule.value, _as_utc(now), timestamps)

    def apply_filter(
        self,
        record: Record,
        rule: FilterRule,
        catalog: FieldCatalog,
        now: Optional[datetime] = None,
    ) -> bool:
        """Apply a single filter rule to a record"""
        return self.compile_rule(rule, catalog, now)(record)

    def _note_unmatched(self, field: str, unmatched: Optional[List[str]], context: str = "filter") -> None:
        if unmatched is not None:
            if field in unmatched:
                return
            unmatched.append(field)
        logger.warning(str(UnmatchedFieldWarning(field, context)))

    # ------------------------------------------------------------------
    # Filtering stages
    # ------------------------------------------------------------------

    def apply_text_search(self, records: Iterable[Record], query: str, search_fields: Sequence[str]) -> List[Record]:
        """Keep records where any searchable field contains the query"""
        if not query or not query.strip():
            return list(records)
        needle = query.lower()
        return [
            record for record in records
            if any(needle in _coerce_text(record.get(key)).lower() for key in search_fields)
        ]

    def apply_filters(
        self,
        records: Iterable[Record],
        catalog: FieldCatalog,
        filters: Sequence[FilterRule],
        groups: Sequence[FilterGroup] = (),
        now: Optional[datetime] = None,
        unmatched: Optional[List[str]] = None,
        timestamps: Optional[TimestampColumns] = None,
    ) -> List[Record]:
        """Apply ungrouped rules as a left-to-right fold, then each OR group.

        The fold has no operator precedence: ``A or B and C`` is evaluated
        as ``(A or B) and C``. Groups are intersected with the fold result and
        with each other.
        """
        filtered = list(records)
        if timestamps is None:
            timestamps = TimestampColumns(filtered, self.resolve_value)
        ungrouped = [rule for rule in filters if not rule.group_id]
        grouped = [rule for rule in filters if rule.group_id]

        if ungrouped:
            compiled = [
                (rule.conjunction, self.compile_rule(rule, catalog, now, unmatched, timestamps))
                for rule in ungrouped
            ]

            def fold(record: Record) -> bool:
                result = compiled[0][1](record)
                for conjunction, predicate in compiled[1:]:
                    if conjunction == Conjunction.OR:
                        result = result or predicate(record)
                    else:
                        result = result and predicate(record)
                return result

            filtered = [record for record in filtered if fold(record)]
            logger.info(f"After {len(ungrouped)} ungrouped filters: {len(filtered)} rows")

        for group in groups:
            members = [
                self.compile_rule(rule, catalog, now, unmatched, timestamps)
                for rule in grouped if rule.group_id == group.id
            ]
            if not members:
                continue
            filtered = [record for record in filtered if any(predicate(record) for predicate in members)]
            logger.info(f"After filter group {group.id} ({len(members)} rules): {len(filtered)} rows")

        return filtered

    # ------------------------------------------------------------------
    # Sorting
    # ------------------------------------------------------------------

    def _text_sort_key(self, record: Record, definition: FieldDefinition, timestamps: TimestampColumns):
        text = _coerce_text(self.resolve_value(record, definition))
        return (text.casefold(), text)

    def _number_sort_key(self, record: Record, definition: FieldDefinition, timestamps: TimestampColumns):
        return _to_number(self.resolve_value(record, definition))

    def _timestamp_sort_key(self, record: Record, definition: FieldDefinition, timestamps: TimestampColumns):
        stamp = timestamps.get(record, definition)
        return 0 if stamp is None else stamp

    def apply_sorts(
        self,
        records: Iterable[Record],
        catalog: FieldCatalog,
        sorts: Sequence[SortRule],
        unmatched: Optional[List[str]] = None,
        timestamps: Optional[TimestampColumns] = None,
    ) -> List[Record]:
        """Stable multi-key sort; the first rule is the primary key.

        Python's sort is stable, so sorting by the lowest-priority key first
        and the primary key last yields the priority order.
        """
        ordered = list(records)
        if timestamps is None:
            timestamps = TimestampColumns(ordered, self.resolve_value)

        if not sorts:
            definition = catalog.get(catalog.default_sort_field) if catalog.default_sort_field else None
            if definition is None:
                if catalog.default_sort_field:
                    self._note_unmatched(catalog.default_sort_field, unmatched, "sort")
                return ordered
            ordered.sort(
                key=lambda record: self._timestamp_sort_key(record, definition, timestamps),
                reverse=True,
            )
            return ordered

        for sort in reversed(sorts):
            definition = catalog.get(sort.field_key)
            if definition is None:
                self._note_unmatched(sort.field_key, unmatched, "sort")
                continue
            sort_key = self.sort_keys[definition.effective_sort_kind]
            ordered.sort(
                key=lambda record, d=definition, k=sort_key: k(record, d, timestamps),
                reverse=sort.direction == SortDirection.DESC,
            )
        return ordered

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def paginate(self, records: Sequence[Record], page: Optional[PageRequest]) -> QueryResult:
        total_count = len(records)
        if page is None:
            return QueryResult(
                items=list(records),
                total_count=total_count,
                total_pages=1 if total_count else 0,
            )

        if page.page_size <= 0:
            raise ConfigurationError(f"page_size must be positive, got {page.page_size}")

        current_page = max(page.page, 1)
        total_pages = math.ceil(total_count / page.page_size) if total_count else 0
        start = (current_page - 1) * page.page_size
        end = min(start + page.page_size, total_count)

        return QueryResult(
            items=list(records[start:end]) if start < total_count else [],
            total_count=total_count,
            total_pages=total_pages,
            page=current_page,
            page_size=page.page_size,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def evaluate(
        self,
        records: Iterable[Record],
        catalog: FieldCatalog,
        text_query: str = "",
        filters: Optional[Sequence[FilterRule]] = None,
        groups: Optional[Sequence[FilterGroup]] = None,
        sorts: Optional[Sequence[SortRule]] = None,
        page: Optional[PageRequest] = None,
        now: Optional[datetime] = None,
    ) -> QueryResult:
        """Search, filter, sort and paginate a record snapshot.

        Inputs are never mutated. ``now`` anchors the relative date buckets
        and defaults to the current UTC time. Date fields are parsed once
        per query and shared by the filter and sort stages.
        """
        unmatched: List[str] = []
        current = _as_utc(now)

        matched = self.apply_text_search(records, text_query, catalog.search_fields)
        timestamps = TimestampColumns(matched, self.resolve_value)
        matched = self.apply_filters(matched, catalog, filters or [], groups or [], current, unmatched, timestamps)
        matched = self.apply_sorts(matched, catalog, sorts or [], unmatched, timestamps)

        result = self.paginate(matched, page)
        result.unmatched_fields = unmatched
        logger.info(
            f"Evaluated query: {result.total_count} matches, "
            f"page {result.page or 1}/{result.total_pages}"
        )
        return result

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_allowed_operators(self, value_kind: ValueKind) -> List[FilterOperator]:
        """Get allowed operators for each value kind"""
        return self.type_operators[value_kind]

    def get_fields_metadata(self, catalog: FieldCatalog) -> List[Dict[str, Any]]:
        """Describe every catalog field with its operators for filter pickers"""
        fields = []
        for definition in catalog.fields:
            operators = [
                {"name": operator.value, "description": self.operator_descriptions[operator]}
                for operator in self.get_allowed_operators(definition.value_kind)
            ]
            fields.append({
                "key": definition.key,
                "label": definition.label,
                "type": definition.value_kind,
                "options": definition.options,
                "sort_kind": definition.effective_sort_kind,
                "operators": operators,
            })
        return fields
