"""
In-memory index of the documents returned by one docs listing.

The storage API hands back a flat list where each record only knows its
parent's id. DocumentIndex keys those records by id and rebuilds the
folder hierarchy on demand: children of a parent, path resolution, and a
depth-first walk.

The index is rebuilt from a fresh listing every time it is needed; it is
not safe to share one instance between concurrent writers.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from rm_cloud.errors import EncodingError
from rm_cloud.models import ROOT, TRASH, TRASH_WIRE, Document, Parent, parse_uuid
from rm_cloud.paths import split_path

logger = logging.getLogger(__name__)

DocumentId = Union[str, UUID]


def _sibling_order(doc: Document) -> Tuple[str, str]:
    return (doc.visible_name, str(doc.id))


class DocumentIndex:
    """Owning id -> Document mapping with hierarchy helpers."""

    def __init__(self, documents: Iterable[Document] = ()):
        self._by_id: Dict[UUID, Document] = {}
        self.insert_all(documents)

    @classmethod
    def from_json(cls, records: Any, strict: bool = True) -> "DocumentIndex":
        """Build an index from the decoded docs listing.

        Args:
            records: The JSON array returned by the docs endpoint
            strict: If False, records that fail to decode are logged and
                skipped instead of aborting the whole listing

        Raises:
            EncodingError: if ``records`` is not a list, or (strict mode) a
                record cannot be decoded
        """
        if not isinstance(records, list):
            raise EncodingError(
                f"Expected a JSON array of documents, got {type(records).__name__}"
            )

        documents = []
        for record in records:
            try:
                documents.append(Document.from_json(record))
            except EncodingError as e:
                if strict:
                    raise
                logger.warning("Skipping malformed document record: %s", e)
        return cls(documents)

    def insert_all(self, documents: Iterable[Document]) -> "DocumentIndex":
        """Add documents; a repeated id replaces the earlier record."""
        for doc in documents:
            self._by_id[doc.id] = doc
        return self

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._by_id.values())

    def __contains__(self, doc_id: object) -> bool:
        key = self._key(doc_id)
        return key is not None and key in self._by_id

    @staticmethod
    def _key(doc_id: Any) -> Optional[UUID]:
        try:
            return parse_uuid(doc_id)
        except EncodingError:
            return None

    def get(self, doc_id: DocumentId) -> Optional[Document]:
        """Look up a document by id. Malformed ids simply miss."""
        key = self._key(doc_id)
        if key is None:
            return None
        return self._by_id.get(key)

    def remove(self, doc_id: DocumentId) -> Optional[Document]:
        """Take a document out of the index and hand it to the caller."""
        key = self._key(doc_id)
        if key is None:
            return None
        return self._by_id.pop(key, None)

    def children(self, parent: Parent) -> List[Document]:
        """All documents whose parent equals ``parent``, sorted by name then id."""
        return sorted((d for d in self._by_id.values() if d.parent == parent), key=_sibling_order)

    def child_named(self, parent: Parent, name: str) -> Optional[Document]:
        """The document called ``name`` directly under ``parent``, if any.

        Siblings sharing a name resolve to the one with the lowest id.
        """
        matches = [d for d in self._by_id.values() if d.parent == parent and d.visible_name == name]
        if not matches:
            return None
        if len(matches) > 1:
            logger.debug(
                "%d documents named %r under %s, picking the lowest id",
                len(matches), name, parent,
            )
        return min(matches, key=lambda d: str(d.id))

    def _descend(self, current: Optional[Document], names: Sequence[str]) -> Optional[Document]:
        for name in names:
            if current is None:
                return None
            current = self.child_named(Parent.node(current.id), name)
        return current

    def resolve_path(self, path: Union[str, Sequence[str]]) -> Optional[Document]:
        """Find the document at a slash-separated path.

        The first component is matched among root-level documents (falling
        back to trashed ones), every following component among the children
        of the previous match. A leading "trash" component that names no
        document addresses the trash itself, so "/trash/Old" finds the
        trashed "Old".

        Returns:
            The Document, or None if any component does not match
        """
        components = split_path(path) if isinstance(path, str) else [c for c in path if c]
        if not components:
            return None

        first, rest = components[0], components[1:]
        current = self.child_named(ROOT, first) or self.child_named(TRASH, first)
        if current is None and first == TRASH_WIRE and rest:
            return self._descend(self.child_named(TRASH, rest[0]), rest[1:])

        return self._descend(current, rest)

    def resolve_folder(self, path: Union[str, Sequence[str]]) -> Optional[Parent]:
        """The Parent a document placed at folder ``path`` gets.

        An empty path or "/" is the root. Returns None when the path does
        not resolve, or resolves to a notebook.
        """
        components = split_path(path) if isinstance(path, str) else [c for c in path if c]
        if not components:
            return ROOT
        folder = self.resolve_path(components)
        if folder is None or not folder.is_folder:
            return None
        return Parent.node(folder.id)

    def walk(self, parent: Parent = ROOT) -> Iterator[Tuple[int, Document]]:
        """Yield ``(depth, document)`` depth-first below ``parent``."""
        children_by_parent: Dict[Parent, List[Document]] = {}
        for doc in self._by_id.values():
            children_by_parent.setdefault(doc.parent, []).append(doc)
        for siblings in children_by_parent.values():
            siblings.sort(key=_sibling_order)

        visited = set()
        stack = [(0, d) for d in reversed(children_by_parent.get(parent, []))]
        while stack:
            depth, doc = stack.pop()
            if doc.id in visited:
                continue
            visited.add(doc.id)
            yield depth, doc
            below = children_by_parent.get(Parent.node(doc.id), [])
            stack.extend((depth + 1, d) for d in reversed(below))
