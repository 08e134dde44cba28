"""
Test doubles for the datastore.

MockCollection records the operations issued against it and answers with
predefined rows, which is enough to check the queries the services build.
InMemoryProductIndex actually evaluates searches over a list of product
documents so that ranking, filtering and pagination can be tested end to end.
InMemoryCollection does the same for the popular term roll-up collections.
"""
import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

from pymongo.errors import DuplicateKeyError

from storefront_search.services.filters import EQ, GTE, LTE, Predicate
from storefront_search.services.product_index import ProductIndex
from storefront_search.services.query_normalizer import NormalizedQuery


class MockCursor:
    """Mock motor cursor supporting sort/limit chaining"""

    def __init__(self, documents: List[Dict[str, Any]], error: Optional[Exception] = None):
        self.documents = documents
        self.error = error
        self.sort_spec = None
        self.limit_value = None

    def sort(self, key_or_list, direction=None):
        self.sort_spec = key_or_list if direction is None else [(key_or_list, direction)]
        return self

    def limit(self, value: int):
        self.limit_value = value
        return self

    async def to_list(self, length: Optional[int] = None):
        if self.error is not None:
            raise self.error
        documents = [dict(doc) for doc in self.documents]
        if self.limit_value:
            documents = documents[:self.limit_value]
        return documents

    def __aiter__(self):
        self._iter = iter(self.documents)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class MockCollection:
    """Mock motor collection that tracks operations and returns predefined rows"""

    def __init__(self, name: str, data: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[Exception] = None):
        self.name = name
        self.data = data or []
        self.error = error
        self.operations = []
        self.cursors = []
        self.update_results = []

    def find(self, query: Dict[str, Any] = None, projection: Dict[str, Any] = None) -> MockCursor:
        self.operations.append(("find", query, projection))
        cursor = MockCursor(self.data, self.error)
        self.cursors.append(cursor)
        return cursor

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> MockCursor:
        self.operations.append(("aggregate", pipeline))
        cursor = MockCursor(self.data, self.error)
        self.cursors.append(cursor)
        return cursor

    async def find_one(self, query: Dict[str, Any]):
        self.operations.append(("find_one", query))
        if self.error is not None:
            raise self.error
        return self.data[0] if self.data else None

    async def insert_one(self, document: Dict[str, Any]) -> MagicMock:
        self.operations.append(("insert_one", document))
        if self.error is not None:
            raise self.error
        self.data.append(document)
        result = MagicMock()
        result.inserted_id = "test_id"
        return result

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        self.operations.append(("update_one", query, update, upsert))
        if self.error is not None:
            raise self.error
        if self.update_results:
            outcome = self.update_results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        result = MagicMock()
        result.modified_count = 1
        result.upserted_id = None
        return result

    def calls(self, name: str) -> List[tuple]:
        return [op for op in self.operations if op[0] == name]


def make_product(product_id: str, name: str, price: float = 100.0, in_stock: bool = True,
                 category_id: str = "rings", created_days_ago: int = 0,
                 description: str = "", material: str = None, style: str = None) -> Dict[str, Any]:
    """Product document as stored in the products collection"""
    created_at = datetime(2024, 1, 1, tzinfo=timezone.utc) - timedelta(days=created_days_ago)
    return {
        "id": product_id,
        "name": name,
        "description": description,
        "price": price,
        "categoryId": category_id,
        "inStock": in_stock,
        "createdAt": created_at,
        "material": material,
        "style": style,
        "searchText": f"{name} {description}".strip(),
    }


_WORD = re.compile(r"[^\W_]+", re.UNICODE)


class InMemoryProductIndex(ProductIndex):
    """
    Product index over a Python list. A token matches a word that starts
    with it; the score is the number of word-prefix hits, like the local
    aggregation backend.
    """

    def __init__(self, products: List[Dict[str, Any]], error: Optional[Exception] = None):
        self.products = products
        self.error = error
        self.calls = []

    @staticmethod
    def _score(query: NormalizedQuery, text: str) -> int:
        words = [word.lower() for word in _WORD.findall(text or "")]
        hits = 0
        for token in query.tokens:
            token_hits = sum(1 for word in words if word.startswith(token))
            if token_hits == 0:
                return 0
            hits += token_hits
        return hits

    @staticmethod
    def _matches(predicate: Predicate, doc: Dict[str, Any]) -> bool:
        for term in predicate.terms:
            value = doc.get(term.field)
            if term.op == EQ and value != term.value:
                return False
            if term.op == GTE and (value is None or value < term.value):
                return False
            if term.op == LTE and (value is None or value > term.value):
                return False
        return True

    async def retrieve(self, query, predicate, ordering, offset, limit):
        self.calls.append((query, predicate, list(ordering), offset, limit))
        if self.error is not None:
            raise self.error

        matched = []
        for doc in self.products:
            if not self._matches(predicate, doc):
                continue
            if query.is_empty:
                score = 0.0
            else:
                score = float(self._score(query, doc["searchText"]))
                if score == 0:
                    continue
            matched.append(dict(doc, score=score))

        # Stable sorts applied from the least significant key
        for field, direction in reversed(list(ordering)):
            matched.sort(key=lambda doc: doc[field], reverse=direction < 0)

        return matched[offset:offset + limit], len(matched)


_MISSING = object()


class InMemoryCollection:
    """
    Collection kept in a Python list that evaluates the query and update
    operators used by the popular term roll-up, including a unique index on
    ``unique_key``. Every call yields to the event loop so that concurrent
    coroutines interleave between datastore operations.
    """

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None, unique_key: str = "_id"):
        self.documents = [dict(doc) for doc in documents or []]
        self.unique_key = unique_key
        self._next_id = 0

    @staticmethod
    def _lookup(doc: Dict[str, Any], path: str):
        value = doc
        for part in path.split("."):
            if not isinstance(value, dict) or part not in value:
                return _MISSING
            value = value[part]
        return value

    @classmethod
    def _matches(cls, doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for path, condition in query.items():
            value = cls._lookup(doc, path)
            if isinstance(condition, dict) and condition and all(key.startswith("$") for key in condition):
                for op, arg in condition.items():
                    if op == "$exists" and (value is not _MISSING) != arg:
                        return False
                    if op == "$ne":
                        if isinstance(value, list) and arg in value:
                            return False
                        if not isinstance(value, list) and value == arg:
                            return False
                    if op == "$nin" and (None if value is _MISSING else value) in arg:
                        return False
                    if op == "$gt" and (value is _MISSING or not value > arg):
                        return False
                    if op == "$lte" and (value is _MISSING or not value <= arg):
                        return False
                continue
            if value is _MISSING:
                value = None
            if isinstance(value, list):
                if condition not in value:
                    return False
            elif value != condition:
                return False
        return True

    @staticmethod
    def _apply(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
        for field, value in update.get("$set", {}).items():
            doc[field] = value
        for field in update.get("$unset", {}):
            doc.pop(field, None)
        for field, value in update.get("$inc", {}).items():
            doc[field] = doc.get(field, 0) + value
        for field, spec in update.get("$push", {}).items():
            values = doc.get(field, []) + list(spec["$each"])
            if "$slice" in spec:
                values = values[spec["$slice"]:]
            doc[field] = values

    async def find_one(self, query: Dict[str, Any]):
        await asyncio.sleep(0)
        for doc in self.documents:
            if self._matches(doc, query):
                return dict(doc)
        return None

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        await asyncio.sleep(0)
        result = MagicMock()
        result.modified_count = 0
        result.upserted_id = None

        for doc in self.documents:
            if self._matches(doc, query):
                self._apply(doc, update)
                result.modified_count = 1
                return result

        if upsert:
            new_doc = {
                field: value for field, value in query.items()
                if "." not in field and not isinstance(value, dict)
            }
            self._apply(new_doc, update)
            for key in {"_id", self.unique_key}:
                if key in new_doc and any(doc.get(key) == new_doc[key] for doc in self.documents):
                    raise DuplicateKeyError(f"E11000 duplicate key error on {key}")
            if "_id" not in new_doc:
                self._next_id += 1
                new_doc["_id"] = self._next_id
            self.documents.append(new_doc)
            result.upserted_id = new_doc["_id"]
        return result

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> MockCursor:
        rows = [dict(doc) for doc in self.documents]
        for stage in pipeline:
            if "$match" in stage:
                rows = [row for row in rows if self._matches(row, stage["$match"])]
            elif "$group" in stage:
                key_field = stage["$group"]["_id"].lstrip("$")
                groups: Dict[Any, Dict[str, Any]] = {}
                for row in rows:
                    key = row.get(key_field)
                    group = groups.setdefault(key, {"_id": key, "count": 0})
                    group["count"] += 1
                rows = list(groups.values())
            elif "$sort" in stage:
                for field, direction in reversed(list(stage["$sort"].items())):
                    rows.sort(key=lambda row: row[field], reverse=direction < 0)
        return MockCursor(rows)
