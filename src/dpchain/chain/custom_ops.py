"""Composite operations.

A composite operation is invoked under its own name (``set-dir``, ``get-dir``)
but is carried by an Operation with the protocol name it builds on
(``set-file``, ``get-filestore``).
At post time its hook expands it into ordinary operations that go through
the normal generate / post / classify / policy path.
"""
import logging
import os
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .. import constants as C
from ..protocol.xmlutil import iter_local, local_name
from .errors import GenerationError
from .model import Operation, OperationKind, Severity

if TYPE_CHECKING:
    from .executor import ChainExecutor

logger = logging.getLogger(__name__)


class CustomOperationHook(ABC):
    """Behaviour attached to a composite operation."""

    name: str = ""
    base_name: str = ""

    def __init__(self, operation: Operation):
        self.operation = operation

    def add_custom_option(self, name: str, value: Optional[str]) -> bool:
        """Consume an option the operation does not know. Returns True if used."""
        return False

    @abstractmethod
    async def intercept_post(self, executor: "ChainExecutor") -> bool:
        """Run the composite. Returns True when the post was handled here."""

    def intercept_result(self, text: str, success: bool) -> str:
        return text

    def child(self, name: str) -> Operation:
        """New operation spawned by this composite, inheriting its settings."""
        parent = self.operation
        child = Operation(
            name=name,
            parent=self,
            fail_flag=parent.fail_flag,
            suppress_response=parent.suppress_response,
        )
        if parent.domain is not None:
            child.set_domain(parent.domain)
        if parent.endpoint is not None:
            child.endpoint = parent.endpoint
            child.dialect = parent.dialect
        return child


class SetDirHook(CustomOperationHook):
    """Upload a local directory tree.

    Creates each sub-directory of srcDir under destDir, then uploads every
    file with a memory-safe set-file.
    """

    name = C.SET_DIR_CUSTOM_OP_NAME
    base_name = C.SET_FILE_OP_NAME

    def plan(self) -> list[Operation]:
        """Operations that upload the tree, in posting order."""
        op = self.operation
        if not op.src_dir or not op.dest_dir:
            raise GenerationError(
                f"{self.name} requires both {C.SRC_DIR_OPT_NAME} and {C.DEST_DIR_OPT_NAME}",
                operation=self.name,
            )
        root = Path(op.src_dir)
        if not root.is_dir():
            raise GenerationError(f"{self.name}: '{op.src_dir}' is not a directory", operation=self.name)

        planned: list[Operation] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            relative = Path(dirpath).relative_to(root).as_posix()
            remote_dir = op.dest_dir if relative == "." else f"{op.dest_dir}{relative}/"

            if relative != ".":
                create = self.child(C.CREATE_DIR_OP_NAME)
                create.add_option(C.DIR_OPT_NAME, remote_dir.rstrip("/"))
                planned.append(create)

            for filename in sorted(filenames):
                upload = self.child(C.SET_FILE_OP_NAME)
                upload.mem_safe = True
                upload.set_src_file(str(Path(dirpath) / filename))
                upload.set_dest_file(remote_dir + filename)
                planned.append(upload)
        return planned

    async def intercept_post(self, executor: "ChainExecutor") -> bool:
        planned = self.plan()
        logger.info(
            f"{self.name}: {self.operation.src_dir} -> {self.operation.dest_dir} "
            f"({len(planned)} operations)"
        )
        for child in planned:
            await executor.run_operation(child)
        return True


def _split_remote(path: str) -> tuple[str, str]:
    """'local:///site/sub/' -> ('local:', 'site/sub')."""
    location, sep, rest = path.partition(":")
    if not sep or not location:
        raise GenerationError(f"'{path}' is not a filestore path such as local:///dir/")
    return location + ":", rest.strip("/")


class GetDirHook(CustomOperationHook):
    """Download a remote directory tree.

    Lists the filestore location holding srcDir, then fetches every file
    at or below srcDir with a get-file into the same relative place under
    the local destDir.
    """

    name = C.GET_DIR_CUSTOM_OP_NAME
    base_name = C.GET_FILESTORE_OP_NAME

    def _require_dirs(self) -> tuple[str, str]:
        op = self.operation
        if not op.src_dir or not op.dest_dir:
            raise GenerationError(
                f"{self.name} requires both {C.SRC_DIR_OPT_NAME} and {C.DEST_DIR_OPT_NAME}",
                operation=self.name,
            )
        location, _ = _split_remote(op.src_dir)
        return location, op.dest_dir

    def listing(self) -> Operation:
        """The get-filestore request for srcDir's location."""
        location, _ = self._require_dirs()
        op = self.child(C.GET_FILESTORE_OP_NAME)
        op.add_option(C.LOCATION_OPT_NAME, location)
        op.suppress_response = True
        return op

    def files(self, listing_xml: str) -> list[tuple[str, Path]]:
        """(remote name, local path) for every listed file under srcDir."""
        location, dest_dir = self._require_dirs()
        _, base = _split_remote(self.operation.src_dir)
        try:
            root = ET.fromstring(listing_xml)
        except ET.ParseError as e:
            raise GenerationError(f"{self.name}: unreadable filestore listing: {e}") from e

        found: list[tuple[str, Path]] = []
        for store in iter_local(root, "location"):
            if store.get("name") != location:
                continue
            for directory in [store] + list(iter_local(store, "directory")):
                _, remote_dir = _split_remote(directory.get("name", location))
                if base and remote_dir != base and not remote_dir.startswith(base + "/"):
                    continue
                relative = remote_dir[len(base):].strip("/")
                for entry in directory:
                    if local_name(entry.tag) != "file" or not entry.get("name"):
                        continue
                    prefix = f"{remote_dir}/" if remote_dir else ""
                    remote = f"{location}///{prefix}{entry.get('name')}"
                    found.append((remote, Path(dest_dir, relative, entry.get("name"))))
        return found

    def plan(self, listing_xml: str) -> list[Operation]:
        planned: list[Operation] = []
        for remote, local in self.files(listing_xml):
            download = self.child(C.GET_FILE_OP_NAME)
            download.set_src_file(remote)
            download.set_dest_file(str(local))
            planned.append(download)
        return planned

    async def intercept_post(self, executor: "ChainExecutor") -> bool:
        listing = self.listing()
        if await executor.dispatcher.generate_and_post(listing) is None:
            return True
        classification = await executor.process_response(listing)
        if classification.severity > Severity.INFO:
            return True

        planned = self.plan(listing.response)
        logger.info(
            f"{self.name}: {self.operation.src_dir} -> {self.operation.dest_dir} "
            f"({len(planned)} files)"
        )
        for child in planned:
            await executor.run_operation(child)
        return True


# Composite operation registry
CUSTOM_OPERATIONS: dict[str, type[CustomOperationHook]] = {
    C.SET_DIR_CUSTOM_OP_NAME: SetDirHook,
    C.GET_DIR_CUSTOM_OP_NAME: GetDirHook,
}


def is_custom_operation(name: str) -> bool:
    return name in CUSTOM_OPERATIONS


def build_operation(name: str) -> Operation:
    """Factory: a native operation, or a composite with its hook attached."""
    hook_class = CUSTOM_OPERATIONS.get(name)
    if hook_class is None:
        return Operation(name=name)
    operation = Operation(name=hook_class.base_name, kind=OperationKind.COMPOSITE)
    operation.hook = hook_class(operation)
    return operation
