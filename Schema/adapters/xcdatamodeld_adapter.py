"""
XCDataModelD Adapter - Read and write .xcdatamodeld version packages.

A package is a directory holding one <Version>.xcdatamodel directory per
version (each with a `contents` XML document) and a `.xccurrentversion`
property list naming the current version.
"""
import logging
import os
import plistlib
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union
from xml.parsers.expat import ExpatError

from config import (
    CONTENTS_FILE, CURRENT_VERSION_FILE, CURRENT_VERSION_KEY,
    PACKAGE_SUFFIX, VERSION_SUFFIX
)
from ..core_data_model import Model
from .xcdatamodel_adapter import XCDataModelAdapter, ModelDecodeError, ModelEncodeError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class PackageError(Exception):
    """Base class for package level failures."""


class MalformedPackageError(PackageError):
    """The path is not a readable model package."""


class PackageSaveError(PackageError):
    """Saving failed; the package on disk was left as it was."""

    def __init__(self, message: str, version_name: Optional[str] = None):
        super().__init__(message)
        self.version_name = version_name


@dataclass
class PackageContents:
    """Result of reading a package directory."""
    name: str
    versions: Dict[str, Model]
    current_version_name: str
    errors: Dict[str, str] = field(default_factory=dict)  # version name -> reason it was skipped


class XCDataModelDAdapter:
    """Adapter between a .xcdatamodeld directory and a set of named Models."""

    @staticmethod
    def package_name(path: PathLike) -> str:
        """Package name: directory name without the .xcdatamodeld suffix."""
        name = Path(path).name
        if name.endswith(PACKAGE_SUFFIX):
            name = name[:-len(PACKAGE_SUFFIX)]
        return name

    # ========== Load Methods ==========

    @classmethod
    def load_from_directory(cls, path: PathLike) -> PackageContents:
        """
        Read every version of a package.

        Versions that fail to decode are skipped and reported in `errors`.
        A package without any readable version yields a single empty Model
        named after the package.

        Raises:
            MalformedPackageError: path is not a directory or cannot be listed
        """
        path = Path(path)
        if not path.is_dir():
            raise MalformedPackageError(f"{path} is not a model package directory")

        package_name = cls.package_name(path)
        versions: Dict[str, Model] = {}
        errors: Dict[str, str] = {}

        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            raise MalformedPackageError(f"Cannot list {path}: {e}") from e

        for entry in entries:
            if not entry.name.endswith(VERSION_SUFFIX) or not entry.is_dir():
                continue
            version_name = entry.name[:-len(VERSION_SUFFIX)]
            if not version_name:
                continue
            try:
                model = XCDataModelAdapter.load_from_file(str(entry / CONTENTS_FILE), version_name)
            except (ModelDecodeError, OSError) as e:
                logger.warning("Skipping version '%s' of %s: %s", version_name, path, e)
                errors[version_name] = str(e)
                continue
            model.name = version_name
            versions[version_name] = model

        marker = cls.read_current_version(path)

        if not versions:
            logger.warning("No readable version in %s, starting with an empty model", path)
            versions = {package_name: Model(name=package_name)}

        if marker in versions:
            current = marker
        else:
            if marker is not None:
                logger.info("Current version '%s' of %s is not available", marker, path)
            current = min(versions)

        for name, model in versions.items():
            model.is_current = name == current

        logger.debug("Loaded %d version(s) from %s, current is '%s'", len(versions), path, current)
        return PackageContents(name=package_name, versions=versions,
                               current_version_name=current, errors=errors)

    @staticmethod
    def read_current_version(path: PathLike) -> Optional[str]:
        """Version name recorded in .xccurrentversion, or None when there is none.

        A marker that is not a readable dictionary plist counts as absent.
        """
        marker = Path(path) / CURRENT_VERSION_FILE
        if not marker.is_file():
            return None
        try:
            data = plistlib.loads(marker.read_bytes())
        except (ValueError, ExpatError, OSError) as e:
            logger.warning("Ignoring unreadable %s in %s: %s", CURRENT_VERSION_FILE, path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring %s in %s, it is not a dictionary", CURRENT_VERSION_FILE, path)
            return None

        value = data.get(CURRENT_VERSION_KEY)
        if not isinstance(value, str):
            return None
        if value.endswith(VERSION_SUFFIX):
            value = value[:-len(VERSION_SUFFIX)]
        return value

    # ========== Save Methods ==========

    @staticmethod
    def encode_current_version(version_name: str) -> bytes:
        return plistlib.dumps({CURRENT_VERSION_KEY: f"{version_name}{VERSION_SUFFIX}"}, fmt=plistlib.FMT_XML)

    @classmethod
    def save_to_directory(cls, path: PathLike, versions: Dict[str, Model], current_version_name: str) -> None:
        """
        Write all versions as a package, replacing whatever is at `path`.

        Every version is encoded before anything touches the disk. The package
        is assembled in a staging directory next to `path` and swapped in.

        Raises:
            PackageSaveError: a version failed to encode (version_name is set)
                or the filesystem refused the write
        """
        path = Path(path)
        encoded: Dict[str, bytes] = {}
        for name in sorted(versions):
            try:
                encoded[name] = XCDataModelAdapter.export(versions[name])
            except ModelEncodeError as e:
                raise PackageSaveError(f"Version '{name}' could not be encoded: {e}", name) from e

        if current_version_name not in encoded:
            logger.warning("Current version '%s' is not in the package, no marker written", current_version_name)

        staging = path.parent / f".{path.name}.{uuid.uuid4().hex}.staging"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            staging.mkdir()
            for name, content in encoded.items():
                version_dir = staging / f"{name}{VERSION_SUFFIX}"
                version_dir.mkdir()
                (version_dir / CONTENTS_FILE).write_bytes(content)
            if current_version_name in encoded:
                (staging / CURRENT_VERSION_FILE).write_bytes(cls.encode_current_version(current_version_name))
            cls._swap(staging, path)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise PackageSaveError(f"Could not write package {path}: {e}") from e

        logger.info("Saved %d version(s) to %s", len(encoded), path)

    @staticmethod
    def _swap(staging: Path, path: Path) -> None:
        backup = None
        if path.exists():
            backup = path.parent / f".{path.name}.{uuid.uuid4().hex}.old"
            os.replace(path, backup)
        try:
            os.replace(staging, path)
        except OSError:
            if backup is not None:
                os.replace(backup, path)
            raise
        if backup is not None:
            if backup.is_dir():
                shutil.rmtree(backup, ignore_errors=True)
            else:
                backup.unlink()
