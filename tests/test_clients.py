"""
tests.test_clients

Resource clients against a mocked document server (`httpx.MockTransport`).

Responsibilities:
- OCS envelope unwrapping and error mapping.
- Request shapes of the provisioning, group folder and sharing endpoints.
- WebDAV multistatus parsing and transfer errors.
- Identity loading, including the sub-admin fallback.
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from vdr_admin.cache.keys import CacheKey
from vdr_admin.cache.mutations import (
    CreateDataRoomParams,
    CreateShareParams,
    TransferParams,
    UpdateUserParams,
)
from vdr_admin.clients.audit import ACTIVITY, AuditClient, export_entries, normalize_activity
from vdr_admin.clients.data_rooms import DataRoomsClient, normalize_room
from vdr_admin.clients.files import FilesClient, parse_multistatus
from vdr_admin.clients.groups import GroupsClient
from vdr_admin.clients.identity import NextcloudIdentityProvider
from vdr_admin.clients.ocs import OcsClient
from vdr_admin.clients.shares import SharesClient, normalize_share
from vdr_admin.clients.users import UsersClient
from vdr_admin.errors import RemoteCallError, UnknownResourceKind
from vdr_admin.settings import Settings

BASE_URL = "https://cloud.example.com"


def form(request: httpx.Request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode())


@pytest.fixture
def ocs(server) -> OcsClient:
    settings = Settings(env="test", nextcloud_base_url=BASE_URL)
    return OcsClient.create(
        settings=settings, username="sam", password="app-pass", transport=httpx.MockTransport(server)
    )


# ===== OCS ENVELOPE =====
@pytest.mark.asyncio
async def test_envelope_is_unwrapped_and_requests_are_authenticated(server, ocs) -> None:
    server.ocs(
        "GET",
        "/ocs/v1.php/cloud/users/details",
        {"users": {"ann": {"id": "ann", "displayname": "Ann", "email": "ann@example.com", "groups": ["finance"]}}},
    )

    payload = await UsersClient(ocs).fetch(CacheKey.build("users.list", params={"search": "an", "limit": 10}))

    assert payload["total"] == 1
    assert payload["users"][0]["display_name"] == "Ann"
    assert payload["users"][0]["groups"] == ["finance"]
    request = server.requests[0]
    assert request.url.params["format"] == "json"
    assert request.url.params["search"] == "an"
    assert request.url.params["limit"] == "10"
    assert request.headers["OCS-APIRequest"] == "true"
    assert request.headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_ocs_failures_map_to_remote_call_errors(server, ocs) -> None:
    server.ocs("GET", "/ocs/v1.php/cloud/users/ghost", None, statuscode=998, message="User does not exist")
    server.ocs("POST", "/ocs/v1.php/cloud/groups", None, statuscode=102, message="group exists")
    server.ocs("DELETE", "/ocs/v1.php/cloud/groups/admin", None, status=403, statuscode=403, message="Not allowed")

    with pytest.raises(RemoteCallError) as missing:
        await ocs.ocs("GET", "/ocs/v1.php/cloud/users/ghost")
    with pytest.raises(RemoteCallError) as exists:
        await ocs.ocs("POST", "/ocs/v1.php/cloud/groups", data={"groupid": "finance"})
    with pytest.raises(RemoteCallError) as forbidden:
        await ocs.ocs("DELETE", "/ocs/v1.php/cloud/groups/admin")

    assert (missing.value.status_code, missing.value.ocs_status) == (404, 998)
    assert exists.value.status_code == 400
    assert exists.value.message == "group exists"
    assert forbidden.value.is_auth_error


@pytest.mark.asyncio
async def test_network_and_protocol_failures(server, ocs) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    server.raw("GET", "/ocs/v2.php/cloud/user", refuse)
    server.raw("GET", "/ocs/v1.php/cloud/groups", lambda _r: httpx.Response(200, text="<html>login</html>"))

    with pytest.raises(RemoteCallError) as network:
        await ocs.ocs("GET", "/ocs/v2.php/cloud/user")
    with pytest.raises(RemoteCallError) as protocol:
        await ocs.ocs("GET", "/ocs/v1.php/cloud/groups")

    assert network.value.is_network_error
    assert "not an OCS response" in protocol.value.message


@pytest.mark.asyncio
async def test_client_refuses_views_it_does_not_own(ocs) -> None:
    with pytest.raises(UnknownResourceKind):
        await UsersClient(ocs).fetch(CacheKey.build("groups.list"))


# ===== USERS & GROUPS =====
@pytest.mark.asyncio
async def test_update_user_sends_one_put_per_field(server, ocs) -> None:
    server.ocs("PUT", "/ocs/v1.php/cloud/users/ann", [])
    server.ocs("GET", "/ocs/v1.php/cloud/users/ann", {"id": "ann", "displayname": "Ann B.", "email": "ann@new.example"})

    user = await UsersClient(ocs).update_user(
        UpdateUserParams(user_id="ann", display_name="Ann B.", email="ann@new.example")
    )

    puts = [form(r) for r in server.sent("PUT", "/ocs/v1.php/cloud/users/ann")]
    assert puts == [
        {"key": ["displayname"], "value": ["Ann B."]},
        {"key": ["email"], "value": ["ann@new.example"]},
    ]
    assert user["display_name"] == "Ann B."


@pytest.mark.asyncio
async def test_group_detail_combines_three_endpoints(server, ocs) -> None:
    server.ocs("GET", "/ocs/v1.php/cloud/groups/finance", {"users": ["ann", "bob"]})
    server.ocs("GET", "/ocs/v1.php/cloud/groups/finance/subadmins", ["sam"])
    server.ocs(
        "GET",
        "/ocs/v1.php/cloud/groups/details",
        {"groups": [{"id": "finance", "displayname": "Finance", "usercount": 2, "disabled": 0}]},
    )
    groups = GroupsClient(ocs)

    detail = await groups.fetch(CacheKey.build("groups.detail", "finance"))
    counts = await groups.fetch(CacheKey.build("groups.member-counts", params={"group_ids": ["finance"]}))

    assert detail == {
        "id": "finance",
        "display_name": "Finance",
        "members": ["ann", "bob"],
        "subadmins": ["sam"],
        "user_count": 2,
    }
    assert counts == {"counts": {"finance": 2}}


# ===== DATA ROOMS =====
FOLDERS = "/ocs/v2.php/apps/groupfolders/folders"


def test_normalize_room_handles_php_empty_maps() -> None:
    room = normalize_room({"id": "7", "mount_point": "Deal X", "groups": [], "quota": None, "size": "10"})

    assert room == {
        "id": 7,
        "mount_point": "Deal X",
        "groups": {},
        "quota": -3,
        "size": 10,
        "acl": False,
        "manage": [],
    }
    assert normalize_room({"id": 8, "groups": {"finance": {"permissions": 1}}})["groups"] == {"finance": 1}


@pytest.mark.asyncio
async def test_create_room_reports_failed_group_assignments(server, ocs) -> None:
    def assign(request: httpx.Request) -> httpx.Response:
        if form(request)["group"] == ["ghost"]:
            return httpx.Response(200, json=server.envelope(None, statuscode=404, message="Group not found"))
        return httpx.Response(200, json=server.envelope({"success": True}))

    server.ocs("POST", FOLDERS, {"id": 7})
    server.raw("POST", f"{FOLDERS}/7/groups", assign)
    server.ocs("POST", f"{FOLDERS}/7/quota", {"success": True})
    server.ocs("GET", f"{FOLDERS}/7", {"id": 7, "mount_point": "Deal X", "groups": {"finance": 31}, "quota": 1024})

    room = await DataRoomsClient(ocs).create_room(
        CreateDataRoomParams(mount_point="Deal X", groups=("finance", "ghost"), quota=1024)
    )

    assert room["id"] == 7
    assert room["groups"] == {"finance": 31}
    assert room["quota"] == 1024
    assert room["warnings"] == ["failed to assign group ghost: Group not found"]
    assert form(server.sent("POST", f"{FOLDERS}/7/quota")[0]) == {"quota": ["1024"]}
    assert not server.sent("POST", f"{FOLDERS}/7/acl")


# ===== SHARES =====
def test_normalize_share() -> None:
    share = normalize_share(
        {
            "id": 12,
            "share_type": 3,
            "path": "/Deals/Term Sheet.pdf",
            "permissions": 1,
            "expiration": "2026-12-31 00:00:00",
            "token": "abc",
            "hide_download": 1,
        }
    )

    assert share["id"] == "12"
    assert share["expire_date"] == "2026-12-31"
    assert share["hide_download"] is True
    assert share["note"] == ""


@pytest.mark.asyncio
async def test_share_requests(server, ocs) -> None:
    shares_path = "/ocs/v2.php/apps/files_sharing/api/v1/shares"
    server.ocs("GET", shares_path, [{"id": 12, "share_type": 1, "share_with": "finance", "path": "/Deals"}])
    server.ocs("POST", shares_path, {"id": 13, "share_type": 3, "path": "/Deals", "token": "xyz"})
    client = SharesClient(ocs)

    listed = await client.fetch(CacheKey.build("shares.by-path", "Deals/", params={"reshares": True}))
    created = await client.create_share(
        CreateShareParams(path="Deals", share_type=3, expire_date="2026-12-31", public_upload=True)
    )

    assert listed["shares"][0]["share_with"] == "finance"
    params = server.sent("GET", shares_path)[0].url.params
    assert params["path"] == "/Deals"
    assert params["reshares"] == "true"
    sent = form(server.sent("POST", shares_path)[0])
    assert sent["shareType"] == ["3"]
    assert sent["expireDate"] == ["2026-12-31"]
    assert sent["publicUpload"] == ["true"]
    assert "shareWith" not in sent
    assert created["token"] == "xyz"


# ===== FILES =====
MULTISTATUS = """<?xml version="1.0"?>
<d:multistatus xmlns:d="DAV:" xmlns:oc="http://owncloud.org/ns">
  <d:response>
    <d:href>/remote.php/dav/files/sam/Deals/</d:href>
    <d:propstat>
      <d:prop>
        <d:getlastmodified>Mon, 05 Oct 2026 10:00:00 GMT</d:getlastmodified>
        <d:getetag>"abc"</d:getetag>
        <d:resourcetype><d:collection/></d:resourcetype>
        <oc:fileid>10</oc:fileid>
        <oc:permissions>RGDNVCK</oc:permissions>
        <oc:size>3072</oc:size>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
    <d:propstat>
      <d:prop><d:getcontentlength/><d:getcontenttype/></d:prop>
      <d:status>HTTP/1.1 404 Not Found</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/remote.php/dav/files/sam/Deals/Term%20Sheet.pdf</d:href>
    <d:propstat>
      <d:prop>
        <d:getcontentlength>1024</d:getcontentlength>
        <d:getcontenttype>application/pdf</d:getcontenttype>
        <d:resourcetype/>
        <oc:fileid>11</oc:fileid>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/remote.php/dav/files/sam/Deals/Archive/</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype><d:collection/></d:resourcetype>
        <oc:size>2048</oc:size>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>
"""


def test_parse_multistatus() -> None:
    folder, pdf, archive = parse_multistatus(MULTISTATUS, username="sam")

    assert folder["path"] == "/Deals"
    assert folder["is_dir"] and folder["size"] == 3072
    assert folder["etag"] == "abc"
    assert folder["content_type"] is None
    assert pdf["path"] == "/Deals/Term Sheet.pdf"
    assert pdf["name"] == "Term Sheet.pdf"
    assert (pdf["size"], pdf["content_type"], pdf["file_id"]) == (1024, "application/pdf", "11")
    assert archive["name"] == "Archive"


def test_malformed_multistatus_is_a_remote_error() -> None:
    with pytest.raises(RemoteCallError):
        parse_multistatus("<d:multistatus", username="sam")


@pytest.mark.asyncio
async def test_list_folder_excludes_itself_and_puts_folders_first(server, ocs) -> None:
    server.raw(
        "PROPFIND",
        "/remote.php/dav/files/sam/Deals",
        lambda _r: httpx.Response(207, text=MULTISTATUS, headers={"Content-Type": "application/xml"}),
    )

    listing = await FilesClient(ocs).fetch(CacheKey.build("files.list", "Deals/"))

    assert listing["path"] == "/Deals"
    assert [i["name"] for i in listing["items"]] == ["Archive", "Term Sheet.pdf"]
    assert server.requests[0].headers["Depth"] == "1"


@pytest.mark.asyncio
async def test_move_sends_absolute_destination_and_explains_conflicts(server, ocs) -> None:
    server.raw("MOVE", "/remote.php/dav/files/sam/Deals/a.pdf", lambda _r: httpx.Response(412))

    with pytest.raises(RemoteCallError) as conflict:
        await FilesClient(ocs).move_item(TransferParams(source="Deals/a.pdf", destination="/Archive/a.pdf"))

    assert conflict.value.status_code == 412
    assert conflict.value.message == "destination already exists and overwrite is disabled"
    request = server.requests[0]
    assert request.headers["Destination"] == f"{BASE_URL}/remote.php/dav/files/sam/Archive/a.pdf"
    assert request.headers["Overwrite"] == "F"


# ===== IDENTITY =====
@pytest.mark.asyncio
async def test_identity_uses_inline_subadmin_list(server, ocs) -> None:
    server.ocs(
        "GET",
        "/ocs/v2.php/cloud/user",
        {"id": "sam", "displayname": "Sam", "groups": ["staff"], "subadmin": ["finance-team"]},
    )

    identity = await NextcloudIdentityProvider(ocs).get_current_identity()

    assert identity is not None
    assert identity.display_name == "Sam"
    assert identity.delegated_admin_groups == frozenset({"finance-team"})
    assert "finance-team" in identity.groups


@pytest.mark.asyncio
async def test_identity_falls_back_to_subadmin_endpoint(server, ocs) -> None:
    server.ocs("GET", "/ocs/v2.php/cloud/user", {"id": "sam", "groups": ["finance-team"]})
    server.ocs("GET", "/ocs/v1.php/cloud/users/sam/subadmins", ["finance-team"])

    identity = await NextcloudIdentityProvider(ocs).get_current_identity()

    assert identity is not None
    assert identity.delegated_admin_groups == frozenset({"finance-team"})


@pytest.mark.asyncio
async def test_rejected_credentials_yield_no_identity_but_outages_raise(server, ocs) -> None:
    provider = NextcloudIdentityProvider(ocs)

    server.ocs("GET", "/ocs/v2.php/cloud/user", None, status=401, statuscode=997, message="Unauthorised")
    assert await provider.get_current_identity() is None

    server.ocs("GET", "/ocs/v2.php/cloud/user", None, status=503, statuscode=503, message="Maintenance")
    with pytest.raises(RemoteCallError):
        await provider.get_current_identity()


# ===== AUDIT =====
@pytest.mark.asyncio
async def test_activity_feed_is_classified_and_summarized(server, ocs) -> None:
    server.ocs(
        "GET",
        ACTIVITY,
        [
            {"activity_id": 3, "app": "admin_audit", "type": "login_failed", "user": "bob", "subject": "Login failed"},
            {"activity_id": 2, "app": "groupfolders", "type": "gf", "user": "root", "subject": "Room renamed"},
        ],
        statuscode=200,
    )
    client = AuditClient(ocs)

    feed = await client.fetch(CacheKey.build("audit.log", params={"limit": 20, "since": 1}))

    sent = server.sent("GET", ACTIVITY)[0]
    assert sent.url.params["limit"] == "20"
    assert sent.url.params["since"] == "1"
    assert [(e["category"], e["severity"]) for e in feed["entries"]] == [
        ("security", "critical"),
        ("data_rooms", "medium"),
    ]
    assert feed["entries"][0]["is_security_event"] is True
    assert feed["stats"]["security_events"] == 1
    assert feed["stats"]["top_users"][0]["count"] == 1


@pytest.mark.asyncio
async def test_activity_feed_without_news_is_empty(server, ocs) -> None:
    server.raw("GET", ACTIVITY, lambda _r: httpx.Response(304))

    feed = await AuditClient(ocs).fetch(CacheKey.build("audit.log"))

    assert feed == {"entries": [], "total": 0, "stats": feed["stats"]}
    assert feed["stats"]["total"] == 0


def test_export_filters_and_renders_json() -> None:
    entries = [
        normalize_activity({"activity_id": 1, "app": "files", "type": "file_created", "subject": "a.pdf created"}),
        normalize_activity({"activity_id": 2, "app": "files", "type": "file_changed", "subject": "b.pdf renamed"}),
    ]

    export = export_entries(entries, fmt="json", severities=["high"])

    assert export.media_type == "application/json"
    assert export.filename.endswith(".json")
    assert export.records == 1
    assert '"a.pdf created"' in export.content

    with pytest.raises(ValueError):
        export_entries(entries, fmt="pdf")
