"""向量记录模型

定义存储在集合中的记录、种子记录、检索结果以及与 LanceDB 行之间的转换。
"""
import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import pyarrow as pa


# Identifiers starting with this prefix are placeholders, never data
SEED_PREFIX = "seed-"

VECTOR_COLUMN = "vector"

# Store columns keep their camelCase names; DataFusion lowercases unquoted
# identifiers, so these must be backtick-quoted inside filter expressions.
CASE_SENSITIVE_COLUMNS = (
    "filePath",
    "symbolName",
    "symbolType",
    "startLine",
    "endLine",
    "kbId",
    "articleTitle",
)


def build_schema(dimension: int) -> pa.Schema:
    """Arrow schema of a collection whose vectors have ``dimension`` floats."""
    return pa.schema(
        [
            pa.field("id", pa.string()),
            pa.field(VECTOR_COLUMN, pa.list_(pa.float32(), dimension)),
            pa.field("text", pa.string()),
            pa.field("type", pa.string()),
            pa.field("filePath", pa.string()),
            pa.field("symbolName", pa.string()),
            pa.field("symbolType", pa.string()),
            pa.field("startLine", pa.int32()),
            pa.field("endLine", pa.int32()),
            pa.field("kbId", pa.string()),
            pa.field("articleTitle", pa.string()),
            pa.field("metadata", pa.string()),
        ]
    )


def is_seed_id(record_id: Optional[str]) -> bool:
    return bool(record_id) and record_id.startswith(SEED_PREFIX)


def seed_row(collection_type: str, dimension: int) -> Dict[str, Any]:
    """Placeholder row that fixes a new collection's schema and dimension."""
    return {
        "id": f"{SEED_PREFIX}{collection_type}",
        "vector": [0.0] * dimension,
        "text": "",
        "type": collection_type,
        "filePath": "",
        "symbolName": "",
        "symbolType": "",
        "startLine": 0,
        "endLine": 0,
        "kbId": "",
        "articleTitle": "",
        "metadata": json.dumps({"isSeed": True}),
    }


@dataclass
class Record:
    """A unit of ingestion.

    The vector is computed by the store during ``upsert``. ``metadata`` may be
    a dict or an already-encoded JSON string.
    """

    id: str
    text: str
    metadata: Union[Dict[str, Any], str] = field(default_factory=dict)
    file_path: Optional[str] = None
    symbol_name: Optional[str] = None
    symbol_type: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    kb_id: Optional[str] = None
    article_title: Optional[str] = None

    def encoded_metadata(self) -> str:
        if isinstance(self.metadata, str):
            return self.metadata
        return json.dumps(self.metadata or {})

    def to_row(self, collection_type: str, vector: List[float]) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vector": [float(v) for v in vector],
            "text": self.text,
            "type": collection_type,
            "filePath": self.file_path,
            "symbolName": self.symbol_name,
            "symbolType": self.symbol_type,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "kbId": self.kb_id,
            "articleTitle": self.article_title,
            "metadata": self.encoded_metadata(),
        }


@dataclass
class RankedHit:
    """A search hit tagged with the collection type it came from."""

    id: str
    score: float
    text: str
    type: str
    file_path: Optional[str] = None
    kb_id: Optional[str] = None
    symbol_name: Optional[str] = None
    symbol_type: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    article_title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any], collection_type: str) -> "RankedHit":
        return cls(
            id=row["id"],
            score=similarity_from_distance(row.get("_distance")),
            text=str(row.get("text") or ""),
            type=row.get("type") or collection_type,
            file_path=row.get("filePath") or row.get("kbId"),
            kb_id=row.get("kbId"),
            symbol_name=row.get("symbolName"),
            symbol_type=row.get("symbolType"),
            start_line=row.get("startLine"),
            end_line=row.get("endLine"),
            article_title=row.get("articleTitle"),
            metadata=parse_metadata(row.get("metadata")),
        )


def similarity_from_distance(distance: Optional[float]) -> float:
    """Map a cosine distance in [0, 2] to a similarity in [0, 1].

    0 means identical, 2 means opposite. Out-of-range and NaN inputs are
    clamped into the closed interval.
    """
    if distance is None:
        distance = 0.0
    distance = float(distance)
    if math.isnan(distance):
        return 0.0
    return min(1.0, max(0.0, 1.0 - distance / 2.0))


def parse_metadata(raw: Any) -> Dict[str, Any]:
    """Decode a metadata column value, yielding {} for anything malformed."""
    if isinstance(raw, dict):
        return raw
    if not raw or not isinstance(raw, str):
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


_STRING_LITERAL = re.compile(r"('(?:[^']|'')*')")
_COLUMN_REF = re.compile(
    r'(["`]?)\b(' + "|".join(CASE_SENSITIVE_COLUMNS) + r')\b\1'
)


def quote_filter(expression: Optional[str]) -> Optional[str]:
    """Backtick-quote case-sensitive column names outside string literals.

    Bare and double-quoted references are rewritten; backticked ones are
    left as they are.
    """
    if not expression:
        return expression
    parts = _STRING_LITERAL.split(expression)
    for i in range(0, len(parts), 2):
        parts[i] = _COLUMN_REF.sub(r"`\2`", parts[i])
    return "".join(parts)
