"""Tests for pruning the update queue against upstream commits."""

from __future__ import annotations

from conftest import installed

from addon_sync.models import UNKNOWN_COMMIT, RemoteInfo
from addon_sync.necessity import bad_branch_error, filter_updates


def test_addon_behind_upstream_is_pulled():
    addon = installed("a", commit="old")
    result = filter_updates([addon], {addon.url: RemoteInfo(latest_commit="new")})
    assert result.to_pull == [addon]
    assert not result.up_to_date
    assert not result.bad_branches


def test_addon_at_latest_commit_is_dropped():
    addon = installed("a", commit="same")
    result = filter_updates([addon], {addon.url: RemoteInfo(latest_commit="same")})
    assert result.up_to_date == [addon]
    assert not result.to_pull


def test_unknown_branch_becomes_failure():
    addon = installed("a", branch="gone")
    result = filter_updates([addon], {addon.url: RemoteInfo(latest_commit=UNKNOWN_COMMIT)})
    assert not result.to_pull
    [failure] = result.bad_branches
    assert failure.addon == addon
    assert failure.error == "Branch does not exist or is not accessible: 'gone'"
    assert failure.error == bad_branch_error(addon)


def test_missing_remote_info_counts_as_bad_branch():
    addon = installed("a")
    result = filter_updates([addon], {})
    assert [f.addon for f in result.bad_branches] == [addon]


def test_unknown_commit_installed_never_matches_unknown_upstream():
    # Bad branches are removed before the equality check.
    addon = installed("a", commit=UNKNOWN_COMMIT)
    result = filter_updates([addon], {addon.url: RemoteInfo(latest_commit=UNKNOWN_COMMIT)})
    assert not result.up_to_date
    assert len(result.bad_branches) == 1


def test_mixed_queue_keeps_order():
    behind = installed("behind", commit="1")
    current = installed("current", commit="2")
    second_behind = installed("second", commit="3")
    info = {
        behind.url: RemoteInfo(latest_commit="9"),
        current.url: RemoteInfo(latest_commit="2"),
        second_behind.url: RemoteInfo(latest_commit="8"),
    }
    result = filter_updates([behind, current, second_behind], info)
    assert result.to_pull == [behind, second_behind]
    assert result.up_to_date == [current]
