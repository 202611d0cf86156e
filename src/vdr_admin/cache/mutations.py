"""
vdr_admin.cache.mutations

Mutation catalog: one explicit entry per write the dashboard can perform.

Responsibilities:
- Define a strict parameter struct per mutation kind (unknown fields rejected).
- Declare the capability each mutation requires (the Permission Gate input).
- Declare optimistic patches (which cached views to predict, with which reducer).
- Declare which authoritative values the server response yields on commit.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from vdr_admin.auth.capabilities import Capability
from vdr_admin.auth.gate import Requirement
from vdr_admin.auth.models import RoleTier
from vdr_admin.cache import reducers as r
from vdr_admin.cache.graph import Dependent, by, every, parent_of
from vdr_admin.cache.keys import CacheKey, MutationKind, QueryKind

# Nextcloud share permission bits.
PERM_READ = 1
PERM_UPDATE = 2
PERM_CREATE = 4
PERM_DELETE = 8
PERM_SHARE = 16
PERM_ALL = 31


class ShareType(IntEnum):
    user = 0
    group = 1
    public_link = 3
    email = 4
    federated = 6


# =====================================================
# PARAMETER STRUCTS
# =====================================================
class MutationParams(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


def _require_any(model: BaseModel, fields: tuple[str, ...]) -> None:
    if all(getattr(model, f) is None for f in fields):
        raise ValueError(f"at least one of {', '.join(fields)} is required")


class CreateUserParams(MutationParams):
    user_id: str = Field(min_length=1)
    password: str | None = Field(default=None, repr=False)
    display_name: str | None = None
    email: str | None = None
    groups: tuple[str, ...] = ()
    subadmin_groups: tuple[str, ...] = ()
    quota: str | None = None
    language: str | None = None

    @model_validator(mode="after")
    def _password_or_email(self) -> CreateUserParams:
        # The server needs one of them to let the user in (welcome mail or password).
        if not self.password and not self.email:
            raise ValueError("password or email is required")
        return self


class UpdateUserParams(MutationParams):
    user_id: str = Field(min_length=1)
    display_name: str | None = None
    email: str | None = None
    password: str | None = Field(default=None, repr=False)
    quota: str | None = None
    language: str | None = None

    @model_validator(mode="after")
    def _has_update(self) -> UpdateUserParams:
        _require_any(self, ("display_name", "email", "password", "quota", "language"))
        return self


class UserRefParams(MutationParams):
    user_id: str = Field(min_length=1)


class UserGroupParams(MutationParams):
    user_id: str = Field(min_length=1)
    group_id: str = Field(min_length=1)


class CreateGroupParams(MutationParams):
    group_id: str = Field(min_length=1)
    display_name: str | None = None


class RenameGroupParams(MutationParams):
    group_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)


class GroupRefParams(MutationParams):
    group_id: str = Field(min_length=1)


class CreateDataRoomParams(MutationParams):
    mount_point: str = Field(min_length=1)
    quota: int | None = None
    groups: tuple[str, ...] = ()
    acl: bool = False


class UpdateDataRoomParams(MutationParams):
    folder_id: int = Field(ge=1)
    mount_point: str | None = Field(default=None, min_length=1)
    # Bytes; -3 means unlimited.
    quota: int | None = Field(default=None, ge=-3)
    acl: bool | None = None

    @model_validator(mode="after")
    def _has_update(self) -> UpdateDataRoomParams:
        _require_any(self, ("mount_point", "quota", "acl"))
        return self


class DataRoomRefParams(MutationParams):
    folder_id: int = Field(ge=1)


class DataRoomGroupParams(MutationParams):
    folder_id: int = Field(ge=1)
    group_id: str = Field(min_length=1)
    permissions: int = Field(default=PERM_ALL, ge=PERM_READ, le=PERM_ALL)


class DataRoomGroupRefParams(MutationParams):
    folder_id: int = Field(ge=1)
    group_id: str = Field(min_length=1)


_DATE = r"^\d{4}-\d{2}-\d{2}$"


class CreateShareParams(MutationParams):
    path: str = Field(min_length=1)
    share_type: ShareType
    share_with: str | None = None
    permissions: int = Field(default=PERM_READ, ge=PERM_READ, le=PERM_ALL)
    password: str | None = Field(default=None, repr=False)
    expire_date: str | None = Field(default=None, pattern=_DATE)
    note: str | None = None
    label: str | None = None
    public_upload: bool | None = None

    @model_validator(mode="after")
    def _recipient(self) -> CreateShareParams:
        if self.share_type is not ShareType.public_link and not self.share_with:
            raise ValueError(f"share_with is required for {self.share_type.name} shares")
        return self


class UpdateShareParams(MutationParams):
    share_id: str = Field(min_length=1)
    # Path of the shared item, when known; narrows by-path invalidation.
    path: str | None = None
    permissions: int | None = Field(default=None, ge=PERM_READ, le=PERM_ALL)
    password: str | None = Field(default=None, repr=False)
    expire_date: str | None = Field(default=None, pattern=_DATE)
    note: str | None = None
    label: str | None = None
    hide_download: bool | None = None

    @model_validator(mode="after")
    def _has_update(self) -> UpdateShareParams:
        _require_any(self, ("permissions", "password", "expire_date", "note", "label", "hide_download"))
        return self


class DeleteShareParams(MutationParams):
    share_id: str = Field(min_length=1)
    path: str | None = None


class PathParams(MutationParams):
    path: str = Field(min_length=1)

    @model_validator(mode="after")
    def _not_root(self) -> PathParams:
        if self.path.strip().strip("/") == "":
            raise ValueError("the root folder cannot be targeted")
        return self


class TransferParams(MutationParams):
    source: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    overwrite: bool = False


# =====================================================
# CATALOG
# =====================================================
Guard = Callable[[Any], Requirement]
CommitWrites = Callable[[Any, Any], dict[CacheKey, Any]]


@dataclass(frozen=True, slots=True)
class Patch:
    target: Dependent
    reducer: r.Reducer


@dataclass(frozen=True, slots=True)
class MutationSpec:
    kind: MutationKind
    params_model: type[MutationParams]
    guard: Guard
    patches: tuple[Patch, ...] = ()
    commit: CommitWrites | None = None
    # Edits of an existing data room: the room's own groups must be in scope too.
    room_scope: Capability | None = None

    def parse(self, params: MutationParams | Mapping[str, Any] | None) -> MutationParams:
        if isinstance(params, MutationParams):
            if not isinstance(params, self.params_model):
                raise ValueError(
                    f"{self.kind.value} expects {self.params_model.__name__}, got {type(params).__name__}"
                )
            return params
        return self.params_model.model_validate(dict(params or {}))

    def requirement(self, params: MutationParams) -> Requirement:
        return self.guard(params)

    def room_requirement(self, room: Mapping[str, Any] | None) -> Requirement | None:
        """
        Requirement derived from the cached room (`None` when not applicable or the
        room is not cached; the server still enforces it then).
        """

        if self.room_scope is None or room is None:
            return None
        groups = sorted(room.get("groups") or ())
        if not groups:
            # A room no group can see is managed by full admins only.
            return Requirement.of(self.room_scope, min_tier=RoleTier.full_admin)
        return Requirement.of(*(f"{self.room_scope.value}:{g}" for g in groups))

    def commit_writes(self, params: MutationParams, response: Any) -> dict[CacheKey, Any]:
        return {} if self.commit is None else self.commit(params, response)


def needs(*caps: str | Capability) -> Guard:
    requirement = Requirement.of(*caps)
    return lambda _params: requirement


def needs_in_group(cap: Capability) -> Guard:
    # Scoped to the group the mutation touches: sub-admins only inside their groups.
    return lambda params: Requirement.of(f"{cap.value}:{params.group_id}")


def write_detail(query: QueryKind, id_field: str) -> CommitWrites:
    def commit(params: Any, response: Any) -> dict[CacheKey, Any]:
        if not isinstance(response, dict) or not response:
            return {}
        return {CacheKey.build(query, getattr(params, id_field)): response}

    return commit


Q = QueryKind
M = MutationKind
C = Capability

_USER_ROWS = (by(Q.user_detail, "user_id"), every(Q.user_list), every(Q.user_search))


def _patches(reducer: r.Reducer, *targets: Dependent) -> tuple[Patch, ...]:
    return tuple(Patch(t, reducer) for t in targets)


def _moved_out(payload: Any, params: Mapping[str, Any]) -> Any:
    return r.remove_file_item(payload, {"path": params["source"]})


MUTATIONS: dict[MutationKind, MutationSpec] = {
    spec.kind: spec
    for spec in (
        # --- users
        MutationSpec(
            M.create_user,
            CreateUserParams,
            needs(C.create_user),
            commit=write_detail(Q.user_detail, "user_id"),
        ),
        MutationSpec(
            M.update_user,
            UpdateUserParams,
            needs(C.edit_user),
            _patches(r.merge_user, *_USER_ROWS),
            write_detail(Q.user_detail, "user_id"),
        ),
        MutationSpec(
            M.enable_user,
            UserRefParams,
            needs(C.edit_user),
            _patches(r.set_user_enabled(True), *_USER_ROWS),
            write_detail(Q.user_detail, "user_id"),
        ),
        MutationSpec(
            M.disable_user,
            UserRefParams,
            needs(C.edit_user),
            _patches(r.set_user_enabled(False), *_USER_ROWS),
            write_detail(Q.user_detail, "user_id"),
        ),
        MutationSpec(
            M.delete_user,
            UserRefParams,
            needs(C.delete_user),
            _patches(r.remove_user, every(Q.user_list), every(Q.user_search)),
        ),
        MutationSpec(
            M.add_user_to_group,
            UserGroupParams,
            needs_in_group(C.edit_group_members),
            (
                *_patches(r.add_membership, by(Q.user_groups, "user_id"), by(Q.group_detail, "group_id")),
                Patch(by(Q.user_detail, "user_id"), r.add_user_group),
            ),
        ),
        MutationSpec(
            M.remove_user_from_group,
            UserGroupParams,
            needs_in_group(C.edit_group_members),
            (
                *_patches(r.remove_membership, by(Q.user_groups, "user_id"), by(Q.group_detail, "group_id")),
                Patch(by(Q.user_detail, "user_id"), r.remove_user_group),
            ),
        ),
        MutationSpec(M.promote_subadmin, UserGroupParams, needs(C.manage_groups)),
        MutationSpec(M.demote_subadmin, UserGroupParams, needs(C.manage_groups)),
        # --- groups
        MutationSpec(
            M.create_group,
            CreateGroupParams,
            needs(C.create_group),
            commit=write_detail(Q.group_detail, "group_id"),
        ),
        MutationSpec(
            M.rename_group,
            RenameGroupParams,
            needs(C.manage_groups),
            _patches(r.rename_group, by(Q.group_detail, "group_id"), every(Q.group_list), every(Q.group_search)),
        ),
        MutationSpec(
            M.delete_group,
            GroupRefParams,
            needs(C.delete_group),
            _patches(r.remove_group, every(Q.group_list), every(Q.group_search)),
        ),
        # --- data rooms
        MutationSpec(M.create_data_room, CreateDataRoomParams, needs(C.create_data_room)),
        MutationSpec(
            M.update_data_room,
            UpdateDataRoomParams,
            needs(C.edit_data_room),
            _patches(r.merge_data_room, by(Q.data_room_detail, "folder_id"), every(Q.data_room_list)),
            write_detail(Q.data_room_detail, "folder_id"),
            room_scope=C.edit_data_room,
        ),
        MutationSpec(
            M.delete_data_room,
            DataRoomRefParams,
            needs(C.delete_data_room),
            _patches(r.remove_data_room, every(Q.data_room_list)),
        ),
        MutationSpec(
            M.add_data_room_group,
            DataRoomGroupParams,
            needs_in_group(C.manage_data_rooms),
            _patches(r.set_data_room_group, by(Q.data_room_detail, "folder_id"), every(Q.data_room_list)),
            room_scope=C.manage_data_rooms,
        ),
        MutationSpec(
            M.set_data_room_group_permissions,
            DataRoomGroupParams,
            needs_in_group(C.manage_data_rooms),
            _patches(r.set_data_room_group, by(Q.data_room_detail, "folder_id"), every(Q.data_room_list)),
            room_scope=C.manage_data_rooms,
        ),
        MutationSpec(
            M.remove_data_room_group,
            DataRoomGroupRefParams,
            needs_in_group(C.manage_data_rooms),
            _patches(r.remove_data_room_group, by(Q.data_room_detail, "folder_id"), every(Q.data_room_list)),
            room_scope=C.manage_data_rooms,
        ),
        # --- shares
        MutationSpec(M.create_share, CreateShareParams, needs(C.upload_document, C.edit_document)),
        MutationSpec(
            M.update_share,
            UpdateShareParams,
            needs(C.upload_document, C.edit_document),
            _patches(r.merge_share, by(Q.share_detail, "share_id"), every(Q.share_list), by(Q.shares_by_path, "path")),
            write_detail(Q.share_detail, "share_id"),
        ),
        MutationSpec(
            M.delete_share,
            DeleteShareParams,
            needs(C.upload_document, C.edit_document),
            _patches(r.remove_share, every(Q.share_list), by(Q.shares_by_path, "path")),
        ),
        # --- files
        MutationSpec(M.create_folder, PathParams, needs(C.upload_document)),
        MutationSpec(
            M.delete_item,
            PathParams,
            needs(C.delete_document),
            (Patch(parent_of(Q.file_list, "path"), r.remove_file_item),),
        ),
        MutationSpec(
            M.move_item,
            TransferParams,
            needs(C.edit_document, C.delete_document),
            (Patch(parent_of(Q.file_list, "source"), _moved_out),),
        ),
        MutationSpec(M.copy_item, TransferParams, needs(C.upload_document)),
    )
}


# --- Module Notes -----------------------------------------------------------
# Guards mirror the server: sub-admins may edit members only of groups they manage
# and may never create or delete users, groups or data rooms.
