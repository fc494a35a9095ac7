"""Tests for the package index clients and the shared HTTP helper."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from rocklock.common import http_client
from rocklock.errors import ConfigError, FetchError
from rocklock.registry.client import (
    HttpIndexClient,
    SnapshotIndexClient,
    build_index_client,
    metadata_from_dict,
)
from rocklock.registry.models import VersionMetadata
from rocklock.versioning.cache import TTLCache
from rocklock.versioning.version import parse_version

DOC = {
    "name": "luasocket",
    "versions": [
        {"version": "3.0-1", "dependencies": ["lua >= 5.1"], "checksum": "sha256:aa",
         "source_url": "https://x.test/luasocket-3.0.tar.gz", "build_type": "builtin"},
        {"version": "3.1.0-1", "dependencies": ["lua >= 5.1"], "checksum": "sha256:bb",
         "source_url": "https://x.test/luasocket-3.1.0.tar.gz",
         "binary_urls": {"x86_64-unknown-linux-gnu": {"url": "https://bin.test/ls.tgz",
                                                      "checksum": "sha256:cc"}}},
        {"version": "scm-1", "dependencies": []},
    ],
}


class TestMetadata:
    """Index record conversion."""

    def test_unparseable_versions_skipped(self):
        assert metadata_from_dict("luasocket", {"version": "scm-1"}) is None

    def test_mapping_dependencies_accepted(self):
        meta = metadata_from_dict("a", {"version": "1.0.0", "dependencies": {"b": ">= 1.0", "c": None}})
        assert meta.dependencies == ("b >= 1.0", "c")

    def test_parsed_dependencies_skip_runtime(self):
        meta = VersionMetadata("a", parse_version("1.0.0"), ("lua >= 5.1", "lpeg ^1.0"))
        assert [name for name, _ in meta.parsed_dependencies()] == ["lpeg"]

    def test_is_native(self):
        assert VersionMetadata("a", parse_version("1.0.0"), build_type="cmake").is_native
        assert not VersionMetadata("a", parse_version("1.0.0"), build_type="builtin").is_native


class TestHttpIndexClient:
    """Remote JSON index, cached per name."""

    def test_get_versions_newest_first(self):
        client = HttpIndexClient("https://index.test", cache=TTLCache())
        with patch("rocklock.registry.client.get_json", return_value=(200, {}, DOC)) as mock_get:
            versions = client.get_versions("luasocket")
        mock_get.assert_called_once_with("https://index.test/index/luasocket.json")
        assert [str(m.version) for m in versions] == ["3.1.0", "3.0.1"]
        assert versions[0].binary_urls["x86_64-unknown-linux-gnu"].url == "https://bin.test/ls.tgz"

    def test_results_are_cached(self):
        client = HttpIndexClient("https://index.test/", cache=TTLCache())
        with patch("rocklock.registry.client.get_json", return_value=(200, {}, DOC)) as mock_get:
            client.get_versions("luasocket")
            client.get_versions("luasocket")
        assert mock_get.call_count == 1

    def test_unknown_package_is_empty(self):
        client = HttpIndexClient("https://index.test/", cache=TTLCache())
        with patch("rocklock.registry.client.get_json", return_value=(404, {}, None)):
            assert client.get_versions("nope") == []

    def test_transport_failure_raises(self):
        client = HttpIndexClient("https://index.test/", cache=TTLCache())
        with patch("rocklock.registry.client.get_json", return_value=(0, {}, None)):
            with pytest.raises(FetchError) as info:
                client.get_versions("luasocket")
        assert info.value.package == "luasocket"


class TestSnapshotIndexClient:
    """Index snapshots loaded from disk."""

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "index.yaml"
        path.write_text(
            "packages:\n  lpeg:\n    - version: '1.1.0-1'\n      checksum: sha256:dd\n",
            encoding="utf-8",
        )
        client = SnapshotIndexClient.from_file(str(path))
        assert client.package_names() == ["lpeg"]
        assert str(client.get_versions("lpeg")[0].version) == "1.1.0"

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"packages": {"luasocket": DOC["versions"]}}), encoding="utf-8")
        client = SnapshotIndexClient.from_file(str(path))
        assert len(client.get_versions("luasocket")) == 2

    def test_distinct_releases_kept(self):
        client = SnapshotIndexClient({"pkg": [
            {"version": "1.0.1-2", "source_url": "https://x.test/pkg-1.0.1-2.tar.gz"},
            {"version": "1.0.2-1", "source_url": "https://x.test/pkg-1.0.2-1.tar.gz"},
        ]})
        versions = client.get_versions("pkg")
        assert [str(m.version) for m in versions] == ["1.0.2", "1.0.1"]
        assert versions[1].source_url == "https://x.test/pkg-1.0.1-2.tar.gz"
        assert versions[1].revision == 2

    @pytest.mark.parametrize("order", [("1.0.0-1", "1.0.0-2"), ("1.0.0-2", "1.0.0-1")])
    def test_later_revision_supersedes(self, order):
        client = SnapshotIndexClient({"pkg": [
            {"version": text, "source_url": f"https://x.test/pkg-{text}.tar.gz"} for text in order
        ]})
        versions = client.get_versions("pkg")
        assert len(versions) == 1
        assert str(versions[0].version) == "1.0.0"
        assert versions[0].revision == 2
        assert versions[0].source_url == "https://x.test/pkg-1.0.0-2.tar.gz"

    def test_duplicate_spelling_warns(self, caplog):
        client = SnapshotIndexClient({"pkg": [
            {"version": "1.0.0", "source_url": "https://x.test/first.tar.gz"},
            {"version": "1.0.0", "source_url": "https://x.test/second.tar.gz"},
        ]})
        versions = client.get_versions("pkg")
        assert [m.source_url for m in versions] == ["https://x.test/first.tar.gz"]
        assert "second.tar.gz" in caplog.text

    def test_bad_file(self, tmp_path):
        path = tmp_path / "index.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            SnapshotIndexClient.from_file(str(path))

    def test_build_index_client(self, tmp_path):
        assert isinstance(build_index_client("https://luarocks.org/"), HttpIndexClient)
        path = tmp_path / "index.yaml"
        path.write_text("packages: {}\n", encoding="utf-8")
        assert isinstance(build_index_client(str(path)), SnapshotIndexClient)
        with pytest.raises(ConfigError):
            build_index_client(str(tmp_path / "missing.yaml"))


class TestRobustGet:
    """Retries in the shared HTTP helper."""

    def _response(self, status, text="{}"):
        resp = MagicMock()
        resp.status_code = status
        resp.headers = {"Content-Type": "application/json"}
        resp.text = text
        return resp

    def test_retries_server_errors(self):
        responses = [self._response(503), self._response(200, '{"ok": true}')]
        with patch("rocklock.common.http_client.requests.get", side_effect=responses) as mock_get, \
                patch("rocklock.common.http_client.time.sleep"):
            status, _, data = http_client.get_json("https://index.test/a.json")
        assert status == 200
        assert data == {"ok": True}
        assert mock_get.call_count == 2

    def test_transport_failures_give_status_zero(self):
        with patch("rocklock.common.http_client.requests.get",
                   side_effect=requests.ConnectionError("refused")), \
                patch("rocklock.common.http_client.time.sleep"):
            status, _, text = http_client.robust_get("https://index.test/a.json", retries=2)
        assert status == 0
        assert "2 attempts" in text

    def test_responses_are_not_cached(self):
        with patch("rocklock.common.http_client.requests.get",
                   return_value=self._response(200)) as mock_get:
            http_client.robust_get("https://index.test/b.json")
            http_client.robust_get("https://index.test/b.json")
        assert mock_get.call_count == 2

    def test_index_lookups_cached_once(self):
        client = HttpIndexClient("https://index.test/", cache=TTLCache())
        response = self._response(200, json.dumps(DOC))
        with patch("rocklock.common.http_client.requests.get", return_value=response) as mock_get:
            client.get_versions("luasocket")
            client.get_versions("luasocket")
        assert mock_get.call_count == 1
        assert len(client.cache) == 1
