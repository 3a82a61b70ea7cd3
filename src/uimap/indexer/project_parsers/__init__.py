from .pbxproj import PbxprojParser
from .swift_manifest import (
    ProjectMetadata,
    SwiftManifestParser,
    TargetMetadata,
    TestTargetMetadata,
)
from .xcodegen import XcodeGenProjectParser

__all__ = [
    "PbxprojParser",
    "ProjectMetadata",
    "SwiftManifestParser",
    "TargetMetadata",
    "TestTargetMetadata",
    "XcodeGenProjectParser",
]
