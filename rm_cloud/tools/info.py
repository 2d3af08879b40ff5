"""remarkable_info tool: full metadata of one item."""

from rm_cloud.errors import RemarkableError
from rm_cloud.server import mcp
from rm_cloud.tools import _helpers


@mcp.tool(annotations=_helpers.INFO_ANNOTATIONS)
def remarkable_info(path: str, compact_output: bool = False) -> str:
    """
    <usecase>Show everything the cloud knows about one document or folder.</usecase>
    <instructions>
    Resolves the path and returns the full record: id, parent, type,
    current page, bookmark flag, last modification and version.
    </instructions>
    <parameters>
    - path: Path of the document or folder, e.g. "/Work/Meeting Notes"
    - compact_output: Omit hints from the response
    </parameters>
    <examples>
    - remarkable_info("/Work/Meeting Notes")
    </examples>
    """
    compact = _helpers.is_compact(compact_output)
    try:
        client, index = _helpers.get_index()
        doc = index.resolve_path(path)
        if doc is None:
            return _helpers.not_found_error(path, index)

        result = _helpers.describe_document(doc, _helpers.get_item_path(doc, index))
        result["version"] = doc.version
        if doc.message:
            result["message"] = doc.message
        if doc.is_folder:
            result["children"] = len(index.children(_helpers.Parent.node(doc.id)))
            hint = f"Folder. List it with remarkable_browse('{path}')."
        else:
            hint = "Document metadata. The archive can be fetched with 'rm-cloud pull'."
        return _helpers.make_response(result, hint, compact=compact)

    except RemarkableError as e:
        return _helpers.remote_error(e)
