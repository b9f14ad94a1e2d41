"""scan/lint 阶段的稳定 issue code 清单（供 severity_overrides 预检使用）。"""

from __future__ import annotations

from typing import FrozenSet

MARKETPLACE_MANIFEST_MISSING = "MARKETPLACE_MANIFEST_MISSING"
MARKETPLACE_MANIFEST_INVALID = "MARKETPLACE_MANIFEST_INVALID"
MARKETPLACE_PLUGIN_SOURCE_NOT_FOUND = "MARKETPLACE_PLUGIN_SOURCE_NOT_FOUND"
MARKETPLACE_PLUGIN_SOURCE_ESCAPE = "MARKETPLACE_PLUGIN_SOURCE_ESCAPE"
MARKETPLACE_PLUGIN_REMOTE_SOURCE = "MARKETPLACE_PLUGIN_REMOTE_SOURCE"
MARKETPLACE_PLUGIN_DUPLICATE = "MARKETPLACE_PLUGIN_DUPLICATE"
MARKETPLACE_PLUGINS_DIR_NOT_FOUND = "MARKETPLACE_PLUGINS_DIR_NOT_FOUND"

PLUGIN_MANIFEST_MISSING = "PLUGIN_MANIFEST_MISSING"
PLUGIN_MANIFEST_INVALID = "PLUGIN_MANIFEST_INVALID"
PLUGIN_NAME_MISMATCH = "PLUGIN_NAME_MISMATCH"

SKILL_MANIFEST_MISSING = "SKILL_MANIFEST_MISSING"
COMPONENT_METADATA_INVALID = "COMPONENT_METADATA_INVALID"
COMPONENT_PATH_ESCAPE = "COMPONENT_PATH_ESCAPE"
COMPONENT_DUPLICATE_NAME = "COMPONENT_DUPLICATE_NAME"
COMPONENT_NAME_INVALID = "COMPONENT_NAME_INVALID"
COMPONENT_NAME_MISMATCH = "COMPONENT_NAME_MISMATCH"
COMPONENT_DESCRIPTION_TOO_LONG = "COMPONENT_DESCRIPTION_TOO_LONG"
COMPONENT_FIELD_INVALID = "COMPONENT_FIELD_INVALID"
COMPONENT_UNKNOWN_FIELD = "COMPONENT_UNKNOWN_FIELD"
COMMAND_ARGUMENT_HINT_UNUSED = "COMMAND_ARGUMENT_HINT_UNUSED"

NAVIGATION_TARGET_NOT_FOUND = "NAVIGATION_TARGET_NOT_FOUND"
PLUGIN_ROOT_REF_NOT_FOUND = "PLUGIN_ROOT_REF_NOT_FOUND"
BODY_LINK_NOT_FOUND = "BODY_LINK_NOT_FOUND"

KNOWN_ISSUE_CODES: FrozenSet[str] = frozenset(
    {
        MARKETPLACE_MANIFEST_MISSING,
        MARKETPLACE_MANIFEST_INVALID,
        MARKETPLACE_PLUGIN_SOURCE_NOT_FOUND,
        MARKETPLACE_PLUGIN_SOURCE_ESCAPE,
        MARKETPLACE_PLUGIN_REMOTE_SOURCE,
        MARKETPLACE_PLUGIN_DUPLICATE,
        MARKETPLACE_PLUGINS_DIR_NOT_FOUND,
        PLUGIN_MANIFEST_MISSING,
        PLUGIN_MANIFEST_INVALID,
        PLUGIN_NAME_MISMATCH,
        SKILL_MANIFEST_MISSING,
        COMPONENT_METADATA_INVALID,
        COMPONENT_PATH_ESCAPE,
        COMPONENT_DUPLICATE_NAME,
        COMPONENT_NAME_INVALID,
        COMPONENT_NAME_MISMATCH,
        COMPONENT_DESCRIPTION_TOO_LONG,
        COMPONENT_FIELD_INVALID,
        COMPONENT_UNKNOWN_FIELD,
        COMMAND_ARGUMENT_HINT_UNUSED,
        NAVIGATION_TARGET_NOT_FOUND,
        PLUGIN_ROOT_REF_NOT_FOUND,
        BODY_LINK_NOT_FOUND,
    }
)
