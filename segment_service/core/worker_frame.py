"""
Worker Frame - Flattens worker attribute sets into a typed Polars DataFrame.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import polars as pl

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from segment_service.core.rule_evaluator import is_empty_value
from segment_service.models.enums import AttributeType
from segment_service.utils.coercion import coerce, coerce_string, resolve_path

WORKER_ID_COLUMN = "worker_id"

_DTYPES = {
    AttributeType.STRING: pl.String,
    AttributeType.ENUM: pl.String,
    AttributeType.NUMBER: pl.Float64,
    AttributeType.DATE: pl.Date,
    AttributeType.BOOLEAN: pl.Boolean,
    AttributeType.ARRAY: pl.List(pl.String),
}


def exists_column(attribute: str) -> str:
    return f"{attribute}::exists"


def empty_column(attribute: str) -> str:
    return f"{attribute}::empty"


class WorkerFrameBuilder:
    """Builds the frame that batch membership expressions run against."""

    @staticmethod
    def build(workers: Mapping[str, Any],
              catalog: Optional[AttributeCatalog] = None,
              attributes: Optional[Iterable[str]] = None) -> pl.DataFrame:
        """
        Flatten {worker_id: attribute_set} into one row per worker.

        For every catalog attribute in ``attributes`` (all catalog attributes
        when None) the frame holds the value coerced to the attribute type
        (null when missing or not coercible) plus two flag columns recording
        whether the raw value exists and whether it is empty. Object attributes
        only get the flag columns.

        Args:
            workers: Mapping of worker id to worker attribute set
            catalog: Attribute catalog declaring attribute types
            attributes: Attribute keys to materialize (usually those a rule references)

        Returns:
            DataFrame with a worker_id column and the attribute columns
        """
        catalog = catalog or DEFAULT_CATALOG
        keys = list(dict.fromkeys(attributes)) if attributes is not None else [a.key for a in catalog.attributes()]
        definitions = [catalog.get(key) for key in keys]
        definitions = [d for d in definitions if d is not None]

        schema: Dict[str, Any] = {WORKER_ID_COLUMN: pl.String}
        for definition in definitions:
            if definition.type in _DTYPES:
                schema[definition.key] = _DTYPES[definition.type]
            schema[exists_column(definition.key)] = pl.Boolean
            schema[empty_column(definition.key)] = pl.Boolean

        columns: Dict[str, List[Any]] = {name: [] for name in schema}
        for worker_id, worker in workers.items():
            columns[WORKER_ID_COLUMN].append(str(worker_id))
            for definition in definitions:
                raw = resolve_path(worker, definition.key)
                if definition.type in _DTYPES:
                    columns[definition.key].append(WorkerFrameBuilder._typed_value(raw, definition.type))
                columns[exists_column(definition.key)].append(raw is not None)
                columns[empty_column(definition.key)].append(is_empty_value(raw))

        return pl.DataFrame(columns, schema=schema)

    @staticmethod
    def _typed_value(raw: Any, attribute_type: AttributeType) -> Any:
        value = coerce(raw, attribute_type)
        if value is None:
            return None
        if attribute_type == AttributeType.ARRAY:
            elements = [coerce_string(v) for v in value]
            return [e for e in elements if e is not None]
        return value
