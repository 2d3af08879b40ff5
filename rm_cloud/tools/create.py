"""remarkable_mkdir and remarkable_upload tools: create documents."""

import zipfile
from pathlib import Path
from typing import Optional
from uuid import uuid4

from rm_cloud import upload
from rm_cloud.errors import RemarkableError
from rm_cloud.paths import base_name, parent_path
from rm_cloud.server import mcp
from rm_cloud.tools import _helpers


@mcp.tool(annotations=_helpers.MKDIR_ANNOTATIONS)
def remarkable_mkdir(path: str, compact_output: bool = False) -> str:
    """
    <usecase>Create a folder in your reMarkable library.</usecase>
    <instructions>
    The last path component is the new folder's name; everything before it
    must be an existing folder. Refuses to create a duplicate name.
    </instructions>
    <parameters>
    - path: Path of the folder to create, e.g. "/Work/2025"
    - compact_output: Omit hints from the response
    </parameters>
    <examples>
    - remarkable_mkdir("/Projects")
    - remarkable_mkdir("/Work/2025")
    </examples>
    """
    compact = _helpers.is_compact(compact_output)
    name = base_name(path)
    if not name:
        return _helpers.make_error(
            error_type="invalid_path",
            message="A folder name is required",
            suggestion="Pass a path such as remarkable_mkdir('/Projects').",
        )

    try:
        client, index = _helpers.get_index()
        folder_path = parent_path(path)
        parent = index.resolve_folder(folder_path)
        if parent is None:
            return _helpers.not_found_error(folder_path, index, what="Folder")
        if index.child_named(parent, name) is not None:
            return _helpers.make_error(
                error_type="already_exists",
                message=f"'{path}' already exists",
                suggestion=f"Use remarkable_browse('{folder_path}') to see what is there.",
            )

        folder_id = upload.create_folder(client, uuid4(), name, parent)
        return _helpers.make_response(
            {"created": True, "id": folder_id, "name": name, "path": path},
            f"Folder created. Upload into it with remarkable_upload(file_path, folder='{path}').",
            compact=compact,
        )

    except RemarkableError as e:
        return _helpers.remote_error(e)


@mcp.tool(annotations=_helpers.UPLOAD_ANNOTATIONS)
def remarkable_upload(
    file_path: str,
    folder: str = "/",
    name: Optional[str] = None,
    compact_output: bool = False,
) -> str:
    """
    <usecase>Upload a notebook archive to your reMarkable library.</usecase>
    <instructions>
    Uploads a document archive (.zip with a <uuid>.content entry, as
    produced by 'rm-cloud pull') into an existing folder. The archive is
    renamed to the id the cloud assigns.
    </instructions>
    <parameters>
    - file_path: Local path of the .zip archive
    - folder: Destination folder path (default: "/")
    - name: Visible name (default: the file name without extension)
    - compact_output: Omit hints from the response
    </parameters>
    <examples>
    - remarkable_upload("/tmp/Meeting Notes.zip", folder="/Work")
    </examples>
    """
    compact = _helpers.is_compact(compact_output)
    local = Path(file_path).expanduser()
    if not local.is_file():
        return _helpers.make_error(
            error_type="file_not_found",
            message=f"No such file: '{file_path}'",
            suggestion="Pass the absolute path of a .zip document archive.",
        )
    visible_name = name or local.stem

    try:
        client, index = _helpers.get_index()
        parent = index.resolve_folder(folder)
        if parent is None:
            return _helpers.not_found_error(folder, index, what="Folder")

        try:
            archive = zipfile.ZipFile(local)
        except zipfile.BadZipFile as e:
            return _helpers.make_error(
                error_type="InvalidArchive",
                message=f"'{file_path}' is not a zip archive: {e}",
                suggestion="Upload a document archive downloaded with 'rm-cloud pull'.",
            )
        with archive:
            doc_id = upload.upload_notebook(client, uuid4(), visible_name, parent, archive)

        return _helpers.make_response(
            {"uploaded": True, "id": doc_id, "name": visible_name, "folder": folder},
            f"Uploaded. Check it with remarkable_browse('{folder}').",
            compact=compact,
        )

    except RemarkableError as e:
        return _helpers.remote_error(e)
