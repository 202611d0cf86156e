"""
vdr_admin.cache.keys

Cache keys, key patterns and the closed sets of resource/query/mutation kinds.

Responsibilities:
- Name every query view (`QueryKind`) and every write (`MutationKind`) the
  dashboard performs against the document server.
- Give each query view an explicit parameter struct that rejects unknown fields.
- Build canonical, hashable `CacheKey`s and prefix/exact `KeyPattern`s.
"""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vdr_admin.errors import UnknownResourceKind


class ResourceKind(StrEnum):
    users = "users"
    groups = "groups"
    data_rooms = "data-rooms"
    shares = "shares"
    files = "files"
    audit = "audit"


class QueryKind(StrEnum):
    user_list = "users.list"
    user_detail = "users.detail"
    user_search = "users.search"
    user_groups = "users.groups"
    user_subadmin_groups = "users.subadmin-groups"

    group_list = "groups.list"
    group_detail = "groups.detail"
    group_search = "groups.search"
    group_member_counts = "groups.member-counts"
    group_subadmins = "groups.subadmins"

    data_room_list = "data-rooms.list"
    data_room_detail = "data-rooms.detail"

    share_list = "shares.list"
    share_detail = "shares.detail"
    shares_by_path = "shares.by-path"

    file_list = "files.list"
    file_properties = "files.properties"

    audit_log = "audit.log"

    @property
    def resource(self) -> ResourceKind:
        return ResourceKind(self.value.split(".", 1)[0])

    @property
    def view(self) -> str:
        return self.value.split(".", 1)[1]

    @property
    def requires_id(self) -> bool:
        return self in _ID_KEYED

    @property
    def path_keyed(self) -> bool:
        return self in _PATH_KEYED


_ID_KEYED = frozenset(
    {
        QueryKind.user_detail,
        QueryKind.user_groups,
        QueryKind.user_subadmin_groups,
        QueryKind.group_detail,
        QueryKind.group_subadmins,
        QueryKind.data_room_detail,
        QueryKind.share_detail,
        QueryKind.shares_by_path,
        QueryKind.file_list,
        QueryKind.file_properties,
    }
)

_PATH_KEYED = frozenset({QueryKind.shares_by_path, QueryKind.file_list, QueryKind.file_properties})


class MutationKind(StrEnum):
    create_user = "users.create"
    update_user = "users.update"
    enable_user = "users.enable"
    disable_user = "users.disable"
    delete_user = "users.delete"
    add_user_to_group = "users.add-to-group"
    remove_user_from_group = "users.remove-from-group"
    promote_subadmin = "users.promote-subadmin"
    demote_subadmin = "users.demote-subadmin"

    create_group = "groups.create"
    rename_group = "groups.rename"
    delete_group = "groups.delete"

    create_data_room = "data-rooms.create"
    update_data_room = "data-rooms.update"
    delete_data_room = "data-rooms.delete"
    add_data_room_group = "data-rooms.add-group"
    set_data_room_group_permissions = "data-rooms.set-group-permissions"
    remove_data_room_group = "data-rooms.remove-group"

    create_share = "shares.create"
    update_share = "shares.update"
    delete_share = "shares.delete"

    create_folder = "files.create-folder"
    delete_item = "files.delete-item"
    move_item = "files.move-item"
    copy_item = "files.copy-item"

    @property
    def resource(self) -> ResourceKind:
        return ResourceKind(self.value.split(".", 1)[0])


def parse_query(value: str | QueryKind) -> QueryKind:
    try:
        return QueryKind(value)
    except ValueError as e:
        raise UnknownResourceKind(f"unknown query view: {value!r}") from e


def parse_mutation(value: str | MutationKind) -> MutationKind:
    try:
        return MutationKind(value)
    except ValueError as e:
        raise UnknownResourceKind(f"unknown mutation kind: {value!r}") from e


# =====================================================
# QUERY PARAMETER STRUCTS
# =====================================================
class QueryParams(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class NoParams(QueryParams):
    pass


class ListParams(QueryParams):
    search: str = ""
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class SearchParams(QueryParams):
    term: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class GroupMemberCountsParams(QueryParams):
    group_ids: tuple[str, ...] = ()

    @field_validator("group_ids")
    @classmethod
    def _canonical(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        # Order-insensitive: ("a", "b") and ("b", "a") share one cache entry.
        return tuple(sorted(dict.fromkeys(v)))


class ShareListParams(QueryParams):
    reshares: bool = False
    subfiles: bool = False


class AuditLogParams(QueryParams):
    # Activity ids, newest first; `since` pages past an id already seen.
    limit: int = Field(default=50, ge=1, le=500)
    since: int | None = Field(default=None, ge=0)


QUERY_PARAMS: dict[QueryKind, type[QueryParams]] = {
    QueryKind.user_list: ListParams,
    QueryKind.user_search: SearchParams,
    QueryKind.group_list: ListParams,
    QueryKind.group_search: SearchParams,
    QueryKind.group_member_counts: GroupMemberCountsParams,
    QueryKind.data_room_list: NoParams,
    QueryKind.share_list: ShareListParams,
    QueryKind.shares_by_path: ShareListParams,
    QueryKind.audit_log: AuditLogParams,
}


def params_model_for(query: QueryKind) -> type[QueryParams]:
    return QUERY_PARAMS.get(query, NoParams)


def coerce_params(query: QueryKind, params: QueryParams | Mapping[str, Any] | None) -> QueryParams:
    model = params_model_for(query)
    if params is None:
        return model()
    if isinstance(params, QueryParams):
        if not isinstance(params, model):
            raise ValueError(f"{query.value} expects {model.__name__}, got {type(params).__name__}")
        return params
    return model.model_validate(dict(params))


def _freeze(value: Any) -> Any:
    if isinstance(value, list | tuple):
        return tuple(_freeze(v) for v in value)
    return value


def normalize_path(path: str) -> str:
    """`"a/b/"` -> `"/a/b"`; the root stays `"/"`."""

    cleaned = posixpath.normpath("/" + path.strip().strip("/"))
    return "/" if cleaned in ("/", "//") else cleaned


def parent_path(path: str) -> str:
    return posixpath.dirname(normalize_path(path)) or "/"


def is_within(path: str, root: str) -> bool:
    path, root = normalize_path(path), normalize_path(root)
    if root == "/":
        return True
    return path == root or path.startswith(root + "/")


# =====================================================
# KEYS
# =====================================================
@dataclass(frozen=True, slots=True)
class CacheKey:
    query: QueryKind
    resource_id: str | None = None
    params: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def build(
        cls,
        query: str | QueryKind,
        resource_id: str | int | None = None,
        params: QueryParams | Mapping[str, Any] | None = None,
    ) -> CacheKey:
        q = parse_query(query)
        rid = None if resource_id is None or resource_id == "" else str(resource_id)
        if q.requires_id and rid is None:
            raise ValueError(f"{q.value} requires a resource id")
        if not q.requires_id and rid is not None:
            raise ValueError(f"{q.value} does not take a resource id")
        if rid is not None and q.path_keyed:
            rid = normalize_path(rid)
        model = coerce_params(q, params)
        frozen = tuple(sorted((k, _freeze(v)) for k, v in model.model_dump().items()))
        return cls(query=q, resource_id=rid, params=frozen)

    @property
    def resource(self) -> ResourceKind:
        return self.query.resource

    @property
    def parts(self) -> tuple[str, str, str | None, tuple[tuple[str, Any], ...]]:
        return (self.resource.value, self.query.view, self.resource_id, self.params)

    def params_model(self) -> QueryParams:
        return params_model_for(self.query)(**dict(self.params))

    def describe(self) -> str:
        text = self.query.value
        if self.resource_id is not None:
            text += f"({self.resource_id})"
        defaults = params_model_for(self.query).model_fields
        shown = [
            f"{k}={v}" for k, v in self.params if k in defaults and v != defaults[k].get_default()
        ]
        if shown:
            text += "?" + "&".join(shown)
        return text


@dataclass(frozen=True, slots=True)
class KeyPattern:
    """
    Prefix match over `(resource, view, resource_id)`.

    `KeyPattern(groups)` matches every group key; adding `query` narrows to one
    view (all ids, all params); adding `resource_id` narrows to one id (all
    params), or to every path below it when `subtree` is set.
    """

    resource: ResourceKind
    query: QueryKind | None = None
    resource_id: str | None = None
    subtree: bool = False

    @classmethod
    def for_query(cls, query: QueryKind, resource_id: str | None = None, *, subtree: bool = False) -> KeyPattern:
        if resource_id is not None and query.path_keyed:
            resource_id = normalize_path(resource_id)
        return cls(resource=query.resource, query=query, resource_id=resource_id, subtree=subtree)

    @classmethod
    def parse(cls, text: str) -> KeyPattern:
        """`"groups"` or `"groups.detail"`."""

        if "." in text:
            return cls.for_query(parse_query(text))
        try:
            return cls(resource=ResourceKind(text))
        except ValueError as e:
            raise UnknownResourceKind(f"unknown resource kind: {text!r}") from e

    def matches(self, key: CacheKey) -> bool:
        if key.resource is not self.resource:
            return False
        if self.query is not None and key.query is not self.query:
            return False
        if self.resource_id is None:
            return True
        if key.resource_id == self.resource_id:
            return True
        return self.subtree and key.resource_id is not None and is_within(key.resource_id, self.resource_id)

    def describe(self) -> str:
        text = self.query.value if self.query is not None else self.resource.value
        if self.resource_id is not None:
            text += f"({self.resource_id}{'/**' if self.subtree else ''})"
        elif self.query is not None:
            text += "(*)"
        return text


PatternLike = str | ResourceKind | QueryKind | KeyPattern | CacheKey


def as_pattern(pattern: PatternLike) -> KeyPattern | CacheKey:
    if isinstance(pattern, KeyPattern | CacheKey):
        return pattern
    if isinstance(pattern, QueryKind):
        return KeyPattern.for_query(pattern)
    if isinstance(pattern, ResourceKind):
        return KeyPattern(resource=pattern)
    return KeyPattern.parse(str(pattern))


def pattern_matches(pattern: KeyPattern | CacheKey, key: CacheKey) -> bool:
    if isinstance(pattern, CacheKey):
        return pattern == key
    return pattern.matches(key)


# --- Module Notes -----------------------------------------------------------
# Path-keyed views (file listings/properties, shares by path) normalize their id,
# so "docs/", "/docs" and "docs" address one entry and subtree patterns line up.
