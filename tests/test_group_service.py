"""
Tests for deduplication and checkout grouping.
"""

import pytest

from vendorlock.classify import classify
from vendorlock.domain import ArchiveGroup, CheckoutGroup, GitReference, PackageMapping, PackageRecord
from vendorlock.errors import SourceResolutionError
from vendorlock.services.group_service import group_sources

COMMIT = "c" * 40
REPO = "https://github.com/example/multi"
KEY = (REPO, COMMIT)


def registry(name, version, checksum="abc"):
    return classify(PackageRecord(name, version, "registry+https://example/index", checksum))


def git(name, query="?branch=main", repo=REPO):
    return classify(PackageRecord(name, "0.1.0", f"git+{repo}{query}#{COMMIT}"))


class TestGroupSources:

    def test_identical_archives_collapse(self):
        groups = group_sources([registry("foo", "1.0.0"), registry("foo", "1.0.0")], {})
        assert groups == [ArchiveGroup(
            name="foo",
            version="1.0.0",
            sha256="abc",
            url="https://static.example/crates/foo/foo-1.0.0.crate",
            dest="vendor/foo-1.0.0",
            registry="https://example/index",
        )]

    def test_distinct_versions_stay_separate(self):
        groups = group_sources([registry("foo", "1.0.0", "a"), registry("foo", "2.0.0", "b")], {})
        assert [g.version for g in groups] == ["1.0.0", "2.0.0"]

    def test_three_packages_one_checkout(self):
        subpaths = {KEY: {"alpha": "crates/alpha", "beta": "crates/beta", "gamma": "."}}
        groups = group_sources([git("gamma"), git("alpha"), git("beta")], subpaths)

        assert len(groups) == 1
        group = groups[0]
        assert isinstance(group, CheckoutGroup)
        assert group.key == KEY
        assert group.packages == (
            PackageMapping("alpha", "crates/alpha", "0.1.0"),
            PackageMapping("beta", "crates/beta", "0.1.0"),
            PackageMapping("gamma", ".", "0.1.0"),
        )

    def test_checkout_records_every_reference(self):
        subpaths = {KEY: {"alpha": ".", "beta": "b"}}
        groups = group_sources([git("alpha", "?branch=main"), git("beta", "?tag=v1")], subpaths)
        assert groups[0].references == (
            (f"git+{REPO}?branch=main", GitReference("branch", "main")),
            (f"git+{REPO}?tag=v1", GitReference("tag", "v1")),
        )

    def test_local_sources_dropped(self):
        local = classify(PackageRecord("app", "0.1.0"))
        assert group_sources([local, registry("foo", "1.0.0")], {})[0].name == "foo"

    def test_sorted_archives_before_checkouts(self):
        subpaths = {KEY: {"alpha": "."}}
        groups = group_sources([git("alpha"), registry("zed", "1.0.0"), registry("abc", "1.0.0")], subpaths)
        assert [g.sort_key[0] for g in groups] == ["archive", "archive", "git"]
        assert [g.name for g in groups[:2]] == ["abc", "zed"]

    def test_unresolved_package_is_fatal(self):
        with pytest.raises(SourceResolutionError, match="No checkout subdirectory"):
            group_sources([git("alpha")], {KEY: {}})

    def test_every_remote_record_lands_in_one_group(self):
        sources = [registry("a", "1.0.0"), registry("a", "1.0.0"), registry("b", "1.0.0"), git("x"), git("y")]
        groups = group_sources(sources, {KEY: {"x": "x", "y": "y"}})
        archive_keys = {g.key for g in groups if isinstance(g, ArchiveGroup)}
        packages = [p.name for g in groups if isinstance(g, CheckoutGroup) for p in g.packages]
        assert archive_keys == {("a", "1.0.0", "abc"), ("b", "1.0.0", "abc")}
        assert packages == ["x", "y"]

    def test_rejects_unknown_kinds(self):
        with pytest.raises(TypeError):
            group_sources([object()], {})
