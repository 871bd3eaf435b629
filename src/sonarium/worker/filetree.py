"""File tree walker: classifies files under a library folder.

The walk is a lazy generator over os.scandir. `FileTreeWalker.walk()`
materializes it into a FolderNode tree; walking the same unchanged folder
twice yields equivalent trees because entries are visited in name order.

Typical usage example:
    tree = FileTreeWalker().walk("/music")
    audio_nodes = tree.root.child_audios_recursively()
    print(tree.failed_paths)
"""

import mimetypes
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from loguru import logger

AUDIO_EXTENSIONS = {
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".wav": "audio/wav",
}
IMAGE_EXTENSIONS = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
}


@dataclass(eq=False)
class Node:
    path: Path
    parent: Optional["FolderNode"] = field(default=None, repr=False)


@dataclass(eq=False)
class AudioNode(Node):
    mime_type: str = "application/octet-stream"


@dataclass(eq=False)
class ImageNode(Node):
    mime_type: str = "application/octet-stream"


@dataclass(eq=False)
class OtherNode(Node):
    pass


@dataclass(eq=False)
class FolderNode(Node):
    child_folders: List["FolderNode"] = field(default_factory=list, repr=False)
    child_audios: List[AudioNode] = field(default_factory=list, repr=False)
    child_images: List[ImageNode] = field(default_factory=list, repr=False)
    child_others: List[OtherNode] = field(default_factory=list, repr=False)

    def child_audios_recursively(self) -> List[AudioNode]:
        result = list(self.child_audios)
        for folder in self.child_folders:
            result.extend(folder.child_audios_recursively())
        return result

    def child_images_recursively(self) -> List[ImageNode]:
        result = list(self.child_images)
        for folder in self.child_folders:
            result.extend(folder.child_images_recursively())
        return result


FileNode = Union[AudioNode, ImageNode, OtherNode]


@dataclass
class FileTree:
    root: FolderNode
    failed_paths: List[str] = field(default_factory=list)


def classify(path: Path) -> Tuple[str, Optional[str]]:
    """Return ("audio" | "image" | "other", mime type) for a file path."""
    suffix = path.suffix.lower()
    if suffix in AUDIO_EXTENSIONS:
        return ("audio", AUDIO_EXTENSIONS[suffix])
    if suffix in IMAGE_EXTENSIONS:
        return ("image", IMAGE_EXTENSIONS[suffix])
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed and guessed.startswith("image/"):
        return ("image", guessed)
    return ("other", guessed)


def _make_file_node(path: Path, parent: FolderNode) -> FileNode:
    kind, mime_type = classify(path)
    if kind == "audio":
        return AudioNode(path=path, parent=parent, mime_type=mime_type)
    if kind == "image":
        return ImageNode(path=path, parent=parent, mime_type=mime_type)
    return OtherNode(path=path, parent=parent)


class FileTreeWalker:
    """Walks a folder and builds its FolderNode tree.

    Unreadable folders are recorded as failed paths and skipped; the rest of
    the tree is still walked.
    """

    def iter_nodes(
        self, folder: FolderNode, failed_paths: List[str], recursive: bool = True
    ) -> Iterator[Union[FolderNode, FileNode]]:
        """Lazily yield the nodes under `folder`, attaching them as children.

        Sub-folders are yielded before being descended into.
        """
        try:
            with os.scandir(folder.path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Could not read folder {folder.path}: {e}")
            failed_paths.append(str(folder.path))
            return

        sub_folders = []
        for entry in entries:
            path = Path(entry.path).absolute()
            try:
                is_dir = entry.is_dir()
                is_file = entry.is_file()
            except OSError as e:
                logger.warning(f"Could not stat {path}: {e}")
                failed_paths.append(str(path))
                continue
            if is_dir:
                child = FolderNode(path=path, parent=folder)
                folder.child_folders.append(child)
                sub_folders.append(child)
                yield child
            elif is_file:
                node = _make_file_node(path, folder)
                if isinstance(node, AudioNode):
                    folder.child_audios.append(node)
                elif isinstance(node, ImageNode):
                    folder.child_images.append(node)
                else:
                    folder.child_others.append(node)
                yield node

        if recursive:
            for child in sub_folders:
                yield from self.iter_nodes(child, failed_paths)

    def walk(self, root_path: Union[str, Path], recursive: bool = True) -> FileTree:
        """Blocking: walk the tree below `root_path` (one level if not recursive)."""
        root = FolderNode(path=Path(root_path).absolute())
        tree = FileTree(root=root)
        count = 0
        for _ in self.iter_nodes(root, tree.failed_paths, recursive):
            count += 1
        logger.debug(f"Walked {root.path}: {count} nodes, {len(tree.failed_paths)} failed")
        return tree

    def audio_node(self, path: Union[str, Path]) -> Optional[AudioNode]:
        """Blocking: node of a single audio file, attached to its folder's siblings."""
        path = Path(path).absolute()
        tree = self.walk(path.parent, recursive=False)
        for node in tree.root.child_audios:
            if node.path == path:
                return node
        return None
