from pydantic import BaseModel, Field, PrivateAttr
from typing import List, Dict, Any, Literal, Optional
from enum import Enum

Record = Dict[str, Any]

class ValueKind(str, Enum):
    TEXT = "text"
    SELECT = "select"
    DATE_BUCKET = "date-bucket"

class SortKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    TIMESTAMP = "timestamp"

class FilterOperator(str, Enum):
    # text
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    # select
    HAS_ANY_OF = "has_any_of"
    HAS_NONE_OF = "has_none_of"
    IS = "is"
    IS_NOT = "is_not"
    # date-bucket
    WITHIN = "within"

class DateBucket(str, Enum):
    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"

class Conjunction(str, Enum):
    AND = "and"
    OR = "or"

class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

class FieldDefinition(BaseModel):
    key: str
    value_kind: ValueKind = Field(alias="valueKind")
    label: Optional[str] = None
    options: Optional[List[str]] = None
    source: Optional[str] = None
    fallback_sources: List[str] = Field(default_factory=list, alias="fallbackSources")
    default: Optional[str] = None
    sort_kind: Optional[SortKind] = Field(default=None, alias="sortKind")

    class Config:
        populate_by_name = True

    @property
    def source_key(self) -> str:
        return self.source or self.key

    @property
    def effective_sort_kind(self) -> SortKind:
        if self.sort_kind is not None:
            return self.sort_kind
        if self.value_kind == ValueKind.DATE_BUCKET:
            return SortKind.TIMESTAMP
        return SortKind.TEXT

class FieldCatalog(BaseModel):
    """Schema of the records being queried.

    ``search_fields`` are raw record keys scanned by free-text search and
    ``default_sort_field`` is the catalog key ordered descending when a query
    carries no sort rules.
    """
    fields: List[FieldDefinition]
    search_fields: List[str] = Field(default_factory=list, alias="searchFields")
    default_sort_field: Optional[str] = Field(default=None, alias="defaultSortField")

    _index: Dict[str, FieldDefinition] = PrivateAttr(default_factory=dict)

    class Config:
        populate_by_name = True

    def model_post_init(self, __context: Any) -> None:
        self._index = {definition.key: definition for definition in self.fields}

    def get(self, key: str) -> Optional[FieldDefinition]:
        return self._index.get(key)

class FilterRule(BaseModel):
    id: str
    field: str
    # Kept as a plain string so unknown operators reach the engine
    operator: str
    value: str = ""
    conjunction: Conjunction = Conjunction.AND
    group_id: Optional[str] = Field(default=None, alias="groupId")

    class Config:
        populate_by_name = True

class FilterGroup(BaseModel):
    """Rules sharing this id match when any one of them does"""
    id: str
    combinator: Literal["or"] = "or"

class SortRule(BaseModel):
    field_key: str = Field(alias="fieldKey")
    direction: SortDirection = SortDirection.ASC

    class Config:
        populate_by_name = True

class PageRequest(BaseModel):
    page: int = 1
    page_size: int = Field(default=50, alias="pageSize")

    class Config:
        populate_by_name = True

class QueryResult(BaseModel):
    items: List[Record]
    total_count: int
    total_pages: int
    page: Optional[int] = None
    page_size: Optional[int] = None
    unmatched_fields: List[str] = Field(default_factory=list)

class OperatorInfo(BaseModel):
    name: str
    description: str

class FieldMetadata(BaseModel):
    key: str
    label: Optional[str]
    type: ValueKind
    options: Optional[List[str]] = None
    sort_kind: SortKind
    operators: List[OperatorInfo]
