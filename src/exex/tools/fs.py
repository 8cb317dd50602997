"""
Filesystem tools for EXEX.

This module provides the filesystem operations exposed over HTTP:
- fs.read: Read a UTF-8 text file
- fs.write: Write (sanitized) content to a file
- fs.scan: List a directory, optionally recursively
- fs.delete: Delete a file or directory
- fs.create: Create a file or directory
- fs.rename: Rename or move a file or directory

Security Note:
    Policy enforcement happens BEFORE these tools execute.
    By the time execute() is called, every path argument has been
    checked against the allowed and disallowed path rules. The one
    exception is a recursive scan, which asks the policy engine again
    for every subdirectory it descends into.

    These tools still handle:
    - File not found errors
    - Permission errors
    - Encoding errors
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Any

from exex.policy.sanitize import sanitize_content
from exex.schema import FileInfo
from exex.tools.base import (
    Tool,
    ToolContext,
    ToolOutput,
    optional_bool,
    require_string,
)

logger = logging.getLogger(__name__)


def _exists(path: Path) -> bool:
    # A dangling symlink still occupies its name.
    return path.exists() or path.is_symlink()


class FsReadTool(Tool):
    """
    Read file contents.

    Arguments:
        path (str): Path to the file to read (required)

    Returns:
        On success: {"content": <file text>}
        On failure: Error message describing what went wrong
    """

    @property
    def name(self) -> str:
        return "fs.read"

    @property
    def description(self) -> str:
        return "Read file contents from the filesystem"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "path", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        path_str = args["path"]
        path = context.resolve(path_str)
        logger.info("Reading file: %s", path_str)

        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.error("Failed to read file %s: %s", path_str, e)
            return ToolOutput.fail(
                f"Failed to read file: not valid UTF-8 text ({e.reason})",
                path=str(path),
            )
        except OSError as e:
            logger.error("Failed to read file %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to read file: {e}", path=str(path))

        logger.info("Successfully read file: %s (%d bytes)", path_str, len(content))
        return ToolOutput.ok({"content": content}, path=str(path), size=len(content))


class FsWriteTool(Tool):
    """
    Write content to a file.

    The content is sanitized (NUL removed, line endings normalized to LF)
    and missing parent directories are created. An existing file is
    overwritten.

    Arguments:
        path (str): Path to the file to write (required)
        content (str): Content to write (required)
    """

    @property
    def name(self) -> str:
        return "fs.write"

    @property
    def description(self) -> str:
        return "Write content to a file on the filesystem"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "path", errors)
        if "content" not in args or args["content"] is None:
            errors.append("'content' is required")
        elif not isinstance(args["content"], str):
            errors.append("'content' must be a string")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        path_str = args["path"]
        path = context.resolve(path_str)
        content = sanitize_content(args["content"])
        logger.info("Writing to file: %s (%d bytes)", path_str, len(content))

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create directories for %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to create directories: {e}", path=str(path))

        try:
            # newline="" keeps the LF endings produced by sanitize_content
            with path.open("w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            logger.error("Failed to write file %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to write file: {e}", path=str(path))

        logger.info("Successfully wrote file: %s", path_str)
        return ToolOutput.ok(
            {},
            path=str(path),
            bytes_written=len(content.encode("utf-8")),
        )


class FsScanTool(Tool):
    """
    List the entries of a directory.

    Arguments:
        path (str): Directory to scan (required)
        recursive (bool): Descend into subdirectories, default False
        include_hidden (bool): Include dot-files, default False

    A recursive scan skips every subdirectory the policy engine denies and
    every subdirectory that cannot be listed. Symlinks are reported but
    never followed.
    """

    @property
    def name(self) -> str:
        return "fs.scan"

    @property
    def description(self) -> str:
        return "List directory contents"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "path", errors)
        optional_bool(args, "recursive", errors)
        optional_bool(args, "include_hidden", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        path_str = args["path"]
        root = context.resolve(path_str)
        recursive = bool(args.get("recursive"))
        include_hidden = bool(args.get("include_hidden"))
        logger.info("Scanning directory: %s", path_str)

        try:
            items = list_directory(root, include_hidden)
        except OSError as e:
            logger.error("Failed to scan directory %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to scan directory: {e}", path=str(root))

        if recursive:
            items.extend(self._scan_subdirectories(items, include_hidden, context))

        logger.info("Successfully scanned directory: %s (%d items)", path_str, len(items))
        return ToolOutput.ok(
            {
                "items": [item.model_dump() for item in items],
                "total_count": len(items),
            },
            path=str(root),
            recursive=recursive,
        )

    def _scan_subdirectories(
        self,
        top_level: list[FileInfo],
        include_hidden: bool,
        context: ToolContext,
    ) -> list[FileInfo]:
        found: list[FileInfo] = []
        stack = [item.path for item in reversed(top_level) if item.is_directory]

        while stack:
            current = stack.pop()
            if context.policy is not None and not context.policy.is_path_allowed(
                current, context.working_dir
            ):
                logger.debug("Skipping denied subdirectory: %s", current)
                continue

            try:
                entries = list_directory(Path(current), include_hidden)
            except OSError as e:
                logger.debug("Skipping unreadable subdirectory %s: %s", current, e)
                continue

            found.extend(entries)
            stack.extend(item.path for item in reversed(entries) if item.is_directory)

        return found


def list_directory(path: Path, include_hidden: bool) -> list[FileInfo]:
    """
    Describe the immediate entries of a directory, sorted by name.

    Raises:
        OSError: If the directory cannot be listed
    """
    items: list[FileInfo] = []
    with os.scandir(path) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            if not include_hidden and entry.name.startswith("."):
                continue
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError as e:
                logger.debug("Cannot stat %s: %s", entry.path, e)
                continue
            is_directory = stat.S_ISDIR(st.st_mode)
            birthtime = getattr(st, "st_birthtime", None)
            items.append(
                FileInfo(
                    name=entry.name,
                    path=entry.path,
                    is_directory=is_directory,
                    size=st.st_size if stat.S_ISREG(st.st_mode) else None,
                    modified=str(int(st.st_mtime)),
                    created=str(int(birthtime)) if birthtime is not None else None,
                    permissions=stat.filemode(st.st_mode),
                )
            )
    return items


class FsDeleteTool(Tool):
    """
    Delete a file or directory.

    Arguments:
        path (str): Path to delete (required)
        recursive (bool): Delete a non-empty directory tree, default False

    Symlinks are removed themselves; their targets are left alone.
    deleted_count is the number of filesystem entries removed.
    """

    @property
    def name(self) -> str:
        return "fs.delete"

    @property
    def description(self) -> str:
        return "Delete a file or directory"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "path", errors)
        optional_bool(args, "recursive", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        path_str = args["path"]
        path = context.resolve(path_str)
        recursive = bool(args.get("recursive"))
        logger.info("Deleting item: %s", path_str)

        try:
            if path.is_symlink() or path.is_file():
                path.unlink()
                deleted_count = 1
            elif path.is_dir():
                if recursive:
                    deleted_count = 1 + _count_descendants(path)
                    shutil.rmtree(path)
                else:
                    path.rmdir()
                    deleted_count = 1
            else:
                logger.error("Failed to delete %s: path not found", path_str)
                return ToolOutput.fail("Failed to delete: Path not found", path=str(path))
        except OSError as e:
            logger.error("Failed to delete %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to delete: {e}", path=str(path))

        logger.info("Successfully deleted: %s", path_str)
        return ToolOutput.ok({"deleted_count": deleted_count}, path=str(path))


def _count_descendants(path: Path) -> int:
    total = 0
    for _, dirnames, filenames in os.walk(path):
        total += len(dirnames) + len(filenames)
    return total


class FsCreateTool(Tool):
    """
    Create a new file or directory.

    Arguments:
        path (str): Path to create (required); must not exist
        is_directory (bool): Create a directory (with parents) instead of a file
        content (str): Initial file content, sanitized (optional)
    """

    @property
    def name(self) -> str:
        return "fs.create"

    @property
    def description(self) -> str:
        return "Create a file or directory"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "path", errors)
        if not isinstance(args.get("is_directory"), bool):
            errors.append("'is_directory' is required and must be a boolean")
        if args.get("content") is not None and not isinstance(args["content"], str):
            errors.append("'content' must be a string")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        path_str = args["path"]
        path = context.resolve(path_str)
        is_directory = args["is_directory"]
        logger.info("Creating item: %s (directory: %s)", path_str, is_directory)

        if _exists(path):
            return ToolOutput.fail(f"Item already exists: {path_str}", path=str(path))

        try:
            if is_directory:
                path.mkdir(parents=True)
            else:
                path.parent.mkdir(parents=True, exist_ok=True)
                content = sanitize_content(args.get("content") or "")
                # "x" refuses to clobber a file created since the check above
                with path.open("x", encoding="utf-8", newline="") as f:
                    f.write(content)
        except OSError as e:
            logger.error("Failed to create %s: %s", path_str, e)
            return ToolOutput.fail(f"Failed to create: {e}", path=str(path))

        logger.info("Successfully created: %s", path_str)
        return ToolOutput.ok({"created_path": str(path)}, path=str(path))


class FsRenameTool(Tool):
    """
    Rename or move a file or directory.

    Arguments:
        from_path (str): Existing source path (required)
        to_path (str): Destination path (required); must not exist

    Missing parent directories of the destination are created.
    """

    @property
    def name(self) -> str:
        return "fs.rename"

    @property
    def description(self) -> str:
        return "Rename or move a file or directory"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        require_string(args, "from_path", errors)
        require_string(args, "to_path", errors)
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail(f"Invalid arguments: {'; '.join(errors)}")

        from_str, to_str = args["from_path"], args["to_path"]
        source = context.resolve(from_str)
        destination = context.resolve(to_str)
        logger.info("Renaming/moving: %s -> %s", from_str, to_str)

        if not _exists(source):
            return ToolOutput.fail(f"Source path does not exist: {from_str}")
        if _exists(destination):
            return ToolOutput.fail(f"Destination path already exists: {to_str}")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create parent directories for %s: %s", to_str, e)
            return ToolOutput.fail(f"Failed to create parent directories: {e}")

        try:
            shutil.move(str(source), str(destination))
        except OSError as e:
            logger.error("Failed to rename/move %s -> %s: %s", from_str, to_str, e)
            return ToolOutput.fail(f"Failed to rename/move: {e}")

        logger.info("Successfully renamed/moved: %s -> %s", from_str, to_str)
        return ToolOutput.ok({"old_path": from_str, "new_path": to_str})


def register_fs_tools(registry=None) -> None:
    """Register all filesystem tools (in the default registry unless given)."""
    from exex.tools.registry import default_registry

    target = registry if registry is not None else default_registry
    for tool in (
        FsReadTool(),
        FsWriteTool(),
        FsScanTool(),
        FsDeleteTool(),
        FsCreateTool(),
        FsRenameTool(),
    ):
        target.register(tool)
