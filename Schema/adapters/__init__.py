from .xcdatamodel_adapter import XCDataModelAdapter, ModelDecodeError, ModelEncodeError
from .xcdatamodeld_adapter import (
    XCDataModelDAdapter, PackageContents,
    PackageError, MalformedPackageError, PackageSaveError
)

__all__ = [
    'XCDataModelAdapter', 'ModelDecodeError', 'ModelEncodeError',
    'XCDataModelDAdapter', 'PackageContents',
    'PackageError', 'MalformedPackageError', 'PackageSaveError',
]
