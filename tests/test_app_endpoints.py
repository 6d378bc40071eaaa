import json
from datetime import datetime, timezone

import boto3
import httpx
from botocore.stub import Stubber
from fastapi.testclient import TestClient

from conftest import ADMIN_TOKEN, make_cluster, sign_in

from gdash.app import create_app
from gdash.auth.roles import Role
from gdash.config import Settings

STATUS = {
    "layoutVersion": 4,
    "nodes": [
        {
            "id": "aaaa1111",
            "garageVersion": "v2.0.0",
            "addr": "10.0.0.1:3901",
            "hostname": "node-a",
            "isUp": True,
            "lastSeenSecsAgo": None,
            "role": {"zone": "dc1", "capacity": 107374182400, "tags": ["ssd"]},
            "draining": False,
            "dataPartition": {"available": 10, "total": 20},
        },
        {
            "id": "bbbb2222",
            "garageVersion": "v2.0.0",
            "addr": "10.0.0.2:3901",
            "hostname": "node-b",
            "isUp": False,
            "lastSeenSecsAgo": 120,
            "role": None,
            "draining": False,
        },
    ],
}


def _bucket_info(request: httpx.Request) -> httpx.Response:
    bucket_id = request.url.params["id"]
    if bucket_id == "broken":
        return httpx.Response(500, text="boom")
    return httpx.Response(200, json={"id": bucket_id, "globalAliases": [f"alias-{bucket_id}"], "bytes": 10, "keys": []})


def test_health_is_normalized(admin_client, garage):
    garage.add(
        "GET",
        "/v2/GetClusterHealth",
        {
            "status": "healthy",
            "knownNodes": 3,
            "connectedNodes": 3,
            "storageNodes": 3,
            "storageNodesUp": 2,
            "partitions": 256,
            "partitionsQuorum": 256,
            "partitionsAllOk": 200,
        },
    )
    r = admin_client.get("/api/garage/health")
    assert r.status_code == 200
    assert r.json()["storageNodesOk"] == 2
    assert "storageNodesUp" not in r.json()
    assert garage.calls[0].headers["authorization"] == f"Bearer {ADMIN_TOKEN}"


def test_status_nodes_become_a_record(admin_client, garage):
    garage.add("GET", "/v2/GetClusterStatus", STATUS)
    body = admin_client.get("/api/garage/status").json()
    assert body["node"] == "aaaa1111"
    assert body["garageVersion"] == "v2.0.0"
    assert body["layoutVersion"] == 4
    assert body["nodes"]["aaaa1111"]["zone"] == "dc1"
    assert body["nodes"]["bbbb2222"]["isUp"] is False
    assert body["nodes"]["bbbb2222"]["capacity"] is None


def test_buckets_drop_failed_detail_calls(admin_client, garage):
    garage.add("GET", "/v2/ListBuckets", [{"id": "b1"}, {"id": "broken"}, {"id": "b2"}])
    garage.on("GET", "/v2/GetBucketInfo", _bucket_info)
    r = admin_client.get("/api/garage/buckets")
    assert r.status_code == 200
    assert [b["id"] for b in r.json()] == ["b1", "b2"]


def test_keys_with_details(admin_client, garage):
    garage.add("GET", "/v2/ListKeys", [{"id": "GK1", "name": "app"}])
    garage.on(
        "GET",
        "/v2/GetKeyInfo",
        lambda req: httpx.Response(200, json={"accessKeyId": req.url.params["id"], "name": "app", "buckets": []}),
    )
    assert admin_client.get("/api/garage/keys").json() == [{"accessKeyId": "GK1", "name": "app", "buckets": []}]


def test_admin_can_create_bucket(admin_client, garage):
    garage.add("POST", "/v2/CreateBucket", {"id": "new"})
    r = admin_client.post("/api/garage/buckets", json={"globalAlias": "photos"})
    assert r.status_code == 200
    assert r.json() == {"id": "new"}
    assert json.loads(garage.calls[0].content) == {"globalAlias": "photos"}


def test_readonly_can_read_but_not_write(readonly_client, garage):
    garage.add("GET", "/v2/ListBuckets", [])
    garage.add("POST", "/v2/CreateBucket", {"id": "new"})

    assert readonly_client.get("/api/garage/buckets").status_code == 200

    r = readonly_client.post("/api/garage/buckets", json={"globalAlias": "photos"})
    assert r.status_code == 403
    assert "error" in r.json()
    assert "/v2/CreateBucket" not in garage.paths()

    # The session itself is still good.
    assert readonly_client.get("/api/auth/role").json()["role"] == "readonly"


def test_readonly_cannot_touch_layout_keys_or_nodes(readonly_client, garage):
    for path, body in [
        ("/api/garage/keys", {"name": "k"}),
        ("/api/garage/bucket-allow", {"bucketId": "b", "accessKeyId": "k"}),
        ("/api/garage/layout", {}),
        ("/api/garage/layout/apply", {"version": 2}),
        ("/api/garage/layout/revert", {"version": 1}),
        ("/api/garage/connect", ["id@10.0.0.3:3901"]),
        ("/api/garage/discover", {"ip": "10.0.0.3"}),
    ]:
        assert readonly_client.post(path, json=body).status_code == 403, path
    assert garage.calls == []


def test_backend_error_status_is_passed_through(admin_client, garage):
    garage.add("POST", "/v2/CreateBucket", "bucket already exists", status=409)
    r = admin_client.post("/api/garage/buckets", json={"globalAlias": "dup"})
    assert r.status_code == 409
    assert "bucket already exists" in r.json()["error"]


def test_unreachable_backend_is_502(settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = TestClient(create_app(settings, garage_transport=httpx.MockTransport(refuse)))
    sign_in(client, Role.ADMIN)
    r = client.get("/api/garage/health")
    assert r.status_code == 502
    assert "connection refused" in r.json()["error"]


def sign_in_pw(client):
    r = client.post("/api/auth/login", json={"password": "pw"})
    assert r.status_code == 200


def test_cluster_is_chosen_by_query(make_client, garage):
    garage.add("GET", "/v2/GetClusterHealth", {"status": "degraded"}, host="second.local")
    client = make_client(Settings(admin_password="pw", clusters=(make_cluster(), make_cluster("second", "second.local"))))
    sign_in_pw(client)
    r = client.get("/api/garage/health?clusterId=second")
    assert r.json()["status"] == "degraded"
    assert garage.calls[0].url.host == "second.local"


def test_no_cluster_configured_is_500(make_client):
    client = make_client(Settings(admin_password="pw"))
    sign_in_pw(client)
    r = client.get("/api/garage/health")
    assert r.status_code == 500
    assert "No cluster configured" in r.json()["error"]


def test_layout_is_normalized(admin_client, garage):
    garage.add(
        "GET",
        "/v2/GetClusterLayout",
        {
            "version": 3,
            "roles": [
                {"id": "n1", "zone": "dc1", "capacity": 1000, "tags": []},
                {"id": "gw", "zone": "dc1", "capacity": None, "tags": []},
            ],
            "stagedRoleChanges": [
                {"id": "n2", "zone": "dc2", "capacity": 2000, "tags": ["hdd"]},
                {"id": "n1", "zone": "", "capacity": None, "tags": []},
            ],
        },
    )
    body = admin_client.get("/api/garage/layout").json()
    assert body == {
        "version": 3,
        "roles": {"n1": {"zone": "dc1", "capacity": 1000, "tags": []}},
        "stagedRoleChanges": {"n2": {"zone": "dc2", "capacity": 2000, "tags": ["hdd"]}, "n1": None},
    }


def test_stage_layout_converts_record_and_capacity(admin_client, garage):
    garage.add("POST", "/v2/UpdateClusterLayout", {"version": 3})
    r = admin_client.post(
        "/api/garage/layout",
        json={"n1": {"zone": "dc1", "capacity": "100GB", "tags": "ssd, fast"}, "n9": None},
    )
    assert r.status_code == 200
    sent = json.loads(garage.calls[0].content)
    assert sent == {
        "roles": [
            {"id": "n1", "zone": "dc1", "capacity": 100 * 1024**3, "tags": ["ssd", "fast"]},
            {"id": "n9", "zone": "", "capacity": None, "tags": []},
        ]
    }


def test_stage_layout_rejects_bad_capacity(admin_client, garage):
    r = admin_client.post("/api/garage/layout", json={"n1": {"zone": "dc1", "capacity": "lots"}})
    assert r.status_code == 400
    assert "Invalid capacity" in r.json()["error"]
    assert garage.calls == []


def test_apply_and_revert_forward_version(admin_client, garage):
    garage.add("POST", "/v2/ApplyClusterLayout", {"message": ["applied"]})
    garage.add("POST", "/v2/RevertClusterLayout", {"version": 3})
    assert admin_client.post("/api/garage/layout/apply", json={"version": 4}).status_code == 200
    assert admin_client.post("/api/garage/layout/revert", json={"version": 3}).status_code == 200
    assert [json.loads(c.content) for c in garage.calls] == [{"version": 4}, {"version": 3}]


def test_connect_requires_peer_strings(admin_client, garage):
    garage.add("POST", "/v2/ConnectClusterNodes", [{"success": True, "error": None}])
    assert admin_client.post("/api/garage/connect", json=["abc@10.0.0.3:3901"]).status_code == 200
    assert admin_client.post("/api/garage/connect", json={"peer": "x"}).status_code == 400


def test_discover_connects_remote_node(admin_client, garage):
    garage.add(
        "GET",
        "/v2/GetClusterStatus",
        {"nodes": [{"id": "other", "addr": "10.9.9.9:3901", "isUp": True, "hostname": "x"},
                   {"id": "fresh", "addr": "10.0.0.7:3901", "isUp": True, "hostname": "node-7"}]},
        host="10.0.0.7",
    )
    garage.add("POST", "/v2/ConnectClusterNodes", [{"success": True}])

    r = admin_client.post("/api/garage/discover", json={"ip": " 10.0.0.7 ", "rpcPort": 3999})
    assert r.status_code == 200
    body = r.json()
    assert body["nodeId"] == "fresh"
    assert body["hostname"] == "node-7"
    assert body["address"] == "fresh@10.0.0.7:3999"
    assert body["connected"] is True

    remote = garage.calls[0]
    assert str(remote.url) == "http://10.0.0.7:3903/v2/GetClusterStatus"
    assert remote.headers["authorization"] == f"Bearer {ADMIN_TOKEN}"
    assert json.loads(garage.calls[1].content) == ["fresh@10.0.0.7:3999"]


def test_discover_needs_an_ip(admin_client):
    r = admin_client.post("/api/garage/discover", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "IP address is required"}


def test_discover_unreachable_node_is_502(admin_client, garage):
    r = admin_client.post("/api/garage/discover", json={"ip": "10.0.0.8"})
    assert r.status_code == 502
    assert "Remote node responded 404" in r.json()["error"]


def test_metrics_are_summarized(admin_client, garage):
    garage.add(
        "GET",
        "/metrics",
        "\n".join(
            [
                "# HELP api_s3_request_counter Number of API calls",
                'api_s3_request_counter{api_endpoint="GetObject"} 10',
                'api_s3_request_counter{api_endpoint="PutObject"} 30',
                'api_s3_error_counter{api_endpoint="GetObject",status_code="404"} 2',
                "block_bytes_read 1024",
                "block_bytes_written 2048",
                'api_admin_request_counter{api_endpoint="GetClusterHealth"} 5',
            ]
        ),
    )
    body = admin_client.get("/api/garage/metrics").json()
    assert body["s3"]["totalRequests"] == 40
    assert body["s3"]["operations"][0] == {"endpoint": "PutObject", "count": 30}
    assert body["s3"]["errors"] == [{"endpoint": "GetObject", "statusCode": "404", "count": 2}]
    assert body["blockIO"] == {"bytesRead": 1024, "bytesWritten": 2048}
    assert body["admin"]["totalRequests"] == 5


def test_s3_objects_listing(make_client, settings):
    s3 = boto3.client(
        "s3",
        endpoint_url="http://garage.local:3900",
        region_name="garage",
        aws_access_key_id="GK1",
        aws_secret_access_key="secret",
    )
    stubber = Stubber(s3)
    stubber.add_response(
        "list_objects_v2",
        {
            "Contents": [
                {
                    "Key": "a/b.txt",
                    "Size": 3,
                    "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "ETag": '"abc"',
                    "StorageClass": "STANDARD",
                }
            ],
            "CommonPrefixes": [{"Prefix": "a/c/"}],
            "IsTruncated": True,
            "NextContinuationToken": "next",
        },
        {"Bucket": "photos", "Prefix": "a/", "Delimiter": "/", "MaxKeys": 200},
    )
    stubber.activate()
    seen = {}

    def factory(cluster, access_key, secret_key):
        seen.update(cluster=cluster.id, access_key=access_key, secret_key=secret_key)
        return s3

    client = make_client(settings, s3_factory=factory)
    sign_in(client, Role.READONLY)
    r = client.get(
        "/api/garage/s3/objects?bucket=photos&prefix=a/",
        headers={"x-s3-access-key": "GK1", "x-s3-secret-key": "secret"},
    )
    assert r.status_code == 200
    assert r.json() == {
        "objects": [
            {
                "key": "a/b.txt",
                "size": 3,
                "lastModified": "2024-01-01T00:00:00+00:00",
                "etag": '"abc"',
                "storageClass": "STANDARD",
            }
        ],
        "prefixes": ["a/c/"],
        "isTruncated": True,
        "nextContinuationToken": "next",
    }
    assert seen == {"cluster": "default", "access_key": "GK1", "secret_key": "secret"}
    stubber.assert_no_pending_responses()


def test_s3_objects_requires_bucket_and_credentials(admin_client):
    assert admin_client.get("/api/garage/s3/objects").status_code == 400
    assert admin_client.get("/api/garage/s3/objects?bucket=photos").status_code == 401


def test_presign_is_allowed_for_readonly(readonly_client):
    r = readonly_client.post(
        "/api/garage/s3/presign",
        json={"bucket": "photos", "key": "a/b.txt", "expiresIn": 10},
        headers={"x-s3-access-key": "GK1", "x-s3-secret-key": "secret"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["expiresIn"] == 60
    assert body["url"].startswith("http://garage.local:3900/photos/a/b.txt?")
    assert "X-Amz-Expires=60" in body["url"]


def test_presign_validation(admin_client):
    headers = {"x-s3-access-key": "GK1", "x-s3-secret-key": "secret"}
    assert admin_client.post("/api/garage/s3/presign", json={"bucket": "photos"}).status_code == 401
    assert admin_client.post("/api/garage/s3/presign", json={"bucket": "photos"}, headers=headers).status_code == 400


def test_home_page_renders_overview(admin_client, garage):
    garage.add("GET", "/v2/GetClusterHealth", {"status": "healthy", "storageNodes": 1, "storageNodesOk": 1})
    garage.add("GET", "/v2/GetClusterStatus", STATUS)
    garage.add("GET", "/v2/ListBuckets", [{"id": "b1"}])
    garage.on("GET", "/v2/GetBucketInfo", _bucket_info)
    r = admin_client.get("/")
    assert r.status_code == 200
    assert "node-a" in r.text
    assert "alias-b1" in r.text
    assert "healthy" in r.text


def test_home_page_shows_backend_errors(readonly_client, garage):
    r = readonly_client.get("/")
    assert r.status_code == 200
    assert "no route for GET /v2/GetClusterHealth" in r.text
    assert "Read-only session" in r.text
