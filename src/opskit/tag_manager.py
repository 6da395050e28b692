"""Tag management module.

This module handles Azure tag operations on resource groups and resources:
get, add (merge), remove and replace. Uses the Tags API of
azure-mgmt-resource at a resource-id scope.

Security:
- Tag keys and values validated at the boundary (TagSet)
- Destructive operations support dry run; the CLI asks for confirmation
"""

import logging
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import Tags, TagsPatchResource, TagsResource

from opskit.credential_factory import CredentialFactory

logger = logging.getLogger(__name__)


class TagManagerError(Exception):
    """Raised when tag management operations fail."""

    pass


class TagValidationError(TagManagerError):
    """Raised when a tag key or value violates Azure tag rules."""

    pass


class TagSet(dict):
    """A validated mapping of tag names to tag values.

    Azure rules: at most 50 tags, key 1-512 characters without
    ``< > % & \\ ? /``, value at most 256 characters.
    """

    MAX_TAGS = 50
    MAX_KEY_LENGTH = 512
    MAX_VALUE_LENGTH = 256
    DISALLOWED_KEY_CHARS = frozenset("<>%&\\?/")

    def __init__(self, tags: dict[str, str] | None = None):
        super().__init__()
        tags = tags or {}
        if len(tags) > self.MAX_TAGS:
            raise TagValidationError(f"Too many tags: {len(tags)} (maximum {self.MAX_TAGS})")
        for key, value in tags.items():
            self[key] = value

    def __setitem__(self, key: str, value: str) -> None:
        self.validate_key(key)
        self.validate_value(key, value)
        if key not in self and len(self) >= self.MAX_TAGS:
            raise TagValidationError(
                f"Too many tags: adding '{key}' would exceed the maximum of {self.MAX_TAGS}"
            )
        super().__setitem__(key, value)

    def update(self, *args, **kwargs) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def setdefault(self, key: str, default: str = "") -> str:
        if key not in self:
            self[key] = default
        return self[key]

    @classmethod
    def validate(cls, mapping: dict[str, str]) -> "TagSet":
        """Validate a plain mapping and return it as a TagSet.

        Raises:
            TagValidationError: Naming the first offending key
        """
        return cls(mapping)

    @classmethod
    def validate_key(cls, key: str) -> None:
        if not isinstance(key, str) or not key:
            raise TagValidationError("Tag key cannot be empty")
        if len(key) > cls.MAX_KEY_LENGTH:
            raise TagValidationError(
                f"Tag key '{key[:32]}...' exceeds {cls.MAX_KEY_LENGTH} characters"
            )
        bad = sorted(set(key) & cls.DISALLOWED_KEY_CHARS)
        if bad:
            raise TagValidationError(
                f"Tag key '{key}' contains disallowed characters: {' '.join(bad)}"
            )

    @classmethod
    def validate_value(cls, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TagValidationError(f"Tag value for '{key}' must be a string")
        if len(value) > cls.MAX_VALUE_LENGTH:
            raise TagValidationError(
                f"Tag value for '{key}' exceeds {cls.MAX_VALUE_LENGTH} characters"
            )

    @classmethod
    def parse_assignments(cls, assignments: list[str] | tuple[str, ...]) -> "TagSet":
        """Build a TagSet from ``key=value`` strings."""
        tags = cls()
        for assignment in assignments:
            key, value = parse_tag_assignment(assignment)
            tags[key] = value
        return tags


def parse_tag_assignment(assignment: str) -> tuple[str, str]:
    """Parse ``key=value``; the value may be empty or contain '='.

    Raises:
        TagValidationError: If the format or key is invalid
    """
    if "=" not in assignment:
        raise TagValidationError(f"Invalid tag format: '{assignment}'. Expected 'key=value'")
    key, value = assignment.split("=", 1)
    key = key.strip()
    TagSet.validate_key(key)
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    TagSet.validate_value(key, value)
    return key, value


class TagManager:
    """Manage tags at a resource group or resource scope.

    ``scope`` is a resource group name or a full ARM resource id.
    """

    def __init__(self, client: ResourceManagementClient, subscription_id: str):
        self.client = client
        self.subscription_id = subscription_id

    @classmethod
    def for_subscription(cls, subscription_id: str) -> "TagManager":
        credential = CredentialFactory.create_management_credential()
        return cls(ResourceManagementClient(credential, subscription_id), subscription_id)

    def scope_id(self, scope: str) -> str:
        if scope.startswith("/subscriptions/"):
            return scope
        return f"/subscriptions/{self.subscription_id}/resourceGroups/{scope}"

    def get_tags(self, scope: str) -> dict[str, str]:
        """Get tags at a scope.

        Raises:
            TagManagerError: If the scope is not found or the call fails
        """
        scope_id = self.scope_id(scope)
        try:
            result = self.client.tags.get_at_scope(scope_id)
        except ResourceNotFoundError as e:
            raise TagManagerError(f"Scope not found: {scope_id}") from e
        except AzureError as e:
            raise TagManagerError(f"Failed to get tags for {scope_id}: {e}") from e

        properties = getattr(result, "properties", None)
        return dict(properties.tags or {}) if properties else {}

    def _patch(self, scope: str, operation: str, tags: dict[str, str]) -> dict[str, str]:
        scope_id = self.scope_id(scope)
        try:
            result = self.client.tags.begin_update_at_scope(
                scope_id,
                TagsPatchResource(operation=operation, properties=Tags(tags=tags)),
            ).result()
        except AzureError as e:
            raise TagManagerError(f"Failed to {operation.lower()} tags on {scope_id}: {e}") from e
        properties = getattr(result, "properties", None)
        return dict(properties.tags or {}) if properties else {}

    def add_tags(self, scope: str, tags: TagSet, dry_run: bool = False) -> dict[str, str]:
        """Merge tags into a scope; returns the resulting tag set."""
        if not tags:
            raise TagManagerError("No tags to add")
        current = self.get_tags(scope)
        planned = TagSet({**current, **tags})
        if dry_run:
            return dict(planned)
        if all(current.get(k) == v for k, v in tags.items()):
            logger.info(f"Tags already present on {scope}; nothing to do")
            return current
        result = self._patch(scope, "Merge", dict(tags))
        logger.info(f"Added {len(tags)} tag(s) to {scope}")
        return result

    def remove_tags(self, scope: str, keys: list[str], dry_run: bool = False) -> dict[str, str]:
        """Delete tag keys from a scope; returns the resulting tag set.

        Keys not present are ignored.
        """
        current = self.get_tags(scope)
        present = {k: current[k] for k in keys if k in current}
        missing = [k for k in keys if k not in current]
        if missing:
            logger.warning(f"Tag(s) not present on {scope}: {', '.join(missing)}")
        planned = {k: v for k, v in current.items() if k not in present}
        if dry_run or not present:
            return planned
        result = self._patch(scope, "Delete", present)
        logger.info(f"Removed {len(present)} tag(s) from {scope}")
        return result

    def replace_tags(self, scope: str, tags: TagSet, dry_run: bool = False) -> dict[str, str]:
        """Replace every tag at a scope with ``tags``."""
        tags = TagSet.validate(dict(tags))
        if dry_run:
            return dict(tags)
        scope_id = self.scope_id(scope)
        try:
            result = self.client.tags.begin_create_or_update_at_scope(
                scope_id, TagsResource(properties=Tags(tags=dict(tags)))
            ).result()
        except AzureError as e:
            raise TagManagerError(f"Failed to replace tags on {scope_id}: {e}") from e
        logger.info(f"Replaced tags on {scope}")
        properties = getattr(result, "properties", None)
        return dict(properties.tags or {}) if properties else {}

    @staticmethod
    def diff(current: dict[str, str], planned: dict[str, str]) -> dict[str, Any]:
        """Summarize added, changed and removed keys between two tag sets."""
        return {
            "added": {k: v for k, v in planned.items() if k not in current},
            "changed": {
                k: (current[k], v) for k, v in planned.items() if k in current and current[k] != v
            },
            "removed": {k: v for k, v in current.items() if k not in planned},
        }


__all__ = [
    "TagManager",
    "TagManagerError",
    "TagSet",
    "TagValidationError",
    "parse_tag_assignment",
]
