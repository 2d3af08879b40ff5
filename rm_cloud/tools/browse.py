"""remarkable_browse tool: list folders of the library."""

from rm_cloud.errors import RemarkableError
from rm_cloud.server import mcp
from rm_cloud.tools import _helpers


@mcp.tool(annotations=_helpers.BROWSE_ANNOTATIONS)
def remarkable_browse(path: str = "/", recursive: bool = False, compact_output: bool = False) -> str:
    """
    <usecase>Browse the folders of your reMarkable library.</usecase>
    <instructions>
    Lists the documents and folders inside a folder.
    - Use path="/" for the root folder
    - Use path="/FolderName/Sub" to navigate into folders
    - Set recursive=True to list everything below the folder

    If the path points at a document, its details are returned instead.
    </instructions>
    <parameters>
    - path: Folder path to browse (default: "/" for root)
    - recursive: Include all nested folders (default: False)
    - compact_output: Omit hints from the response
    </parameters>
    <examples>
    - remarkable_browse()  # List root folder
    - remarkable_browse("/Work")  # List Work folder
    - remarkable_browse("/Work", recursive=True)
    </examples>
    """
    compact = _helpers.is_compact(compact_output)
    try:
        client, index = _helpers.get_index()

        folder = index.resolve_folder(path)
        if folder is None:
            doc = index.resolve_path(path)
            if doc is None:
                return _helpers.not_found_error(path, index, what="Folder")
            result = {
                "mode": "document",
                "document": _helpers.describe_document(doc, _helpers.get_item_path(doc, index)),
            }
            return _helpers.make_response(
                result,
                f"'{path}' is a document. Use remarkable_info('{path}') for all metadata.",
                compact=compact,
            )

        if recursive:
            items = []
            for depth, doc in index.walk(folder):
                entry = _helpers.describe_document(doc, _helpers.get_item_path(doc, index))
                entry["depth"] = depth
                items.append(entry)
        else:
            items = [
                _helpers.describe_document(doc, _helpers.get_item_path(doc, index))
                for doc in index.children(folder)
            ]

        result = {
            "mode": "browse",
            "path": path,
            "count": len(items),
            "items": items,
        }
        folders = [i for i in items if i["type"] == "folder"]
        if folders and not recursive:
            hint = (
                f"Found {len(items)} items. "
                f"Browse into a folder: remarkable_browse('{folders[0]['path']}')."
            )
        elif items:
            hint = f"Found {len(items)} items."
        else:
            hint = "This folder is empty. Create a folder with remarkable_mkdir()."
        return _helpers.make_response(result, hint, compact=compact)

    except RemarkableError as e:
        return _helpers.remote_error(e)
