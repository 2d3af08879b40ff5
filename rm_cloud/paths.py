"""
Path utilities for the reMarkable cloud client.

Splitting user paths, building a document's full path, and fuzzy
"did you mean" suggestions.
"""

from difflib import SequenceMatcher
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from rm_cloud.index import DocumentIndex
    from rm_cloud.models import Document


def split_path(path: str) -> List[str]:
    """Split a slash-separated path into components.

    Leading, trailing and doubled slashes are ignored:
    '/Work//Notes/' -> ['Work', 'Notes']
    """
    return [part for part in path.strip().split("/") if part]


def join_path(components: Iterable[str]) -> str:
    return "/" + "/".join(components)


def parent_path(path: str) -> str:
    """'/Work/Notes' -> '/Work'; '/Notes' -> '/'."""
    return join_path(split_path(path)[:-1])


def base_name(path: str) -> str:
    parts = split_path(path)
    return parts[-1] if parts else ""


def get_item_path(doc: "Document", index: "DocumentIndex") -> str:
    """Get the full path of a document.

    Parents missing from the index end the walk, so a document whose
    folder was not listed gets a shortened path rather than an error.
    """
    path_parts = [doc.visible_name]
    visited = {doc.id}
    parent = doc.parent
    while parent.id is not None and parent.id not in visited:
        folder = index.get(parent.id)
        if folder is None:
            break
        visited.add(folder.id)
        path_parts.insert(0, folder.visible_name)
        parent = folder.parent
    if parent.is_trash:
        path_parts.insert(0, "trash")
    return join_path(path_parts)


def find_similar_documents(query: str, documents: Iterable["Document"], limit: int = 5) -> List[str]:
    """Find documents with similar names for 'did you mean' suggestions."""
    query_lower = base_name(query).lower() or query.lower()
    scored = []
    for doc in documents:
        name = doc.visible_name
        ratio = SequenceMatcher(None, query_lower, name.lower()).ratio()
        # Boost partial matches
        if query_lower in name.lower():
            ratio += 0.3
        scored.append((name, ratio))

    scored.sort(key=lambda x: x[1], reverse=True)
    return [name for name, score in scored[:limit] if score > 0.3]
