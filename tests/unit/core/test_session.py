"""Unit tests for Session state."""

from __future__ import annotations

import pytest

from kube_runner.core.models import DeploymentItem, PodItem, ResourceKind, SecretItem
from kube_runner.core.session import (
    ERROR_BANNER_SECONDS,
    SUCCESS_BANNER_SECONDS,
    Session,
)


def _pods() -> list[PodItem]:
    return [
        PodItem(name="api-1", phase="Running"),
        PodItem(name="api-2", phase="Pending"),
        PodItem(name="Web-1", phase="Running"),
        PodItem(name="worker", phase="Failed"),
    ]


@pytest.mark.unit
class TestFilters:
    """Tests for the text and status filters."""

    def test_empty_query_returns_all_in_order(self, session: Session) -> None:
        session.set_items(_pods())
        assert [i.name for i in session.filtered_items] == ["api-1", "api-2", "Web-1", "worker"]

    def test_text_filter_is_case_insensitive(self, session: Session) -> None:
        session.set_items(_pods())
        session.filter_query = "WEB"
        session.update_filter()
        assert [i.name for i in session.filtered_items] == ["Web-1"]

    def test_no_match_yields_empty(self, session: Session) -> None:
        session.set_items(_pods())
        session.filter_query = "nothing"
        session.update_filter()
        assert session.filtered_items == []

    def test_status_and_text_filters_combine(self, session: Session) -> None:
        session.set_items(_pods())
        session.status_filter = {"Running"}
        session.filter_query = "api"
        session.update_filter()
        assert [i.name for i in session.filtered_items] == ["api-1"]

    def test_status_filter_ignored_off_pod_tab(self, session: Session) -> None:
        session.kind = ResourceKind.DEPLOYMENT
        session.status_filter = {"Running"}
        session.set_items([DeploymentItem(name="web")])
        assert len(session.filtered_items) == 1

    def test_update_clears_selection_and_clamps_cursor(self, session: Session) -> None:
        session.set_items(_pods())
        session.selection = {0, 1}
        session.cursor = 3
        session.filter_query = "api"

        session.update_filter()

        assert session.selection == set()
        assert session.cursor == 1

    def test_clear_filters(self, session: Session) -> None:
        session.set_items(_pods())
        session.filter_query = "api"
        session.status_filter = {"Running"}

        session.clear_filters()

        assert session.filter_query == ""
        assert session.status_filter == set()
        assert len(session.filtered_items) == 4

    def test_status_filter_items_counts_phases(self, session: Session) -> None:
        session.set_items(_pods())
        session.status_filter = {"Running"}

        session.build_status_filter_items()

        assert session.status_filter_items == [("Failed", 1), ("Pending", 1), ("Running", 2)]
        assert session.status_filter_selected == {2}
        assert session.status_filter_cursor == 0


@pytest.mark.unit
class TestTabs:
    """Tests for tab switching."""

    def test_next_tab_resets_items(self, session: Session) -> None:
        session.set_items(_pods())
        session.cursor = 1
        session.selection = {1}
        session.status_filter = {"Running"}

        session.next_tab()

        assert session.kind is ResourceKind.DEPLOYMENT
        assert session.items == []
        assert session.filtered_items == []
        assert session.cursor is None
        assert session.selection == set()
        assert session.status_filter == set()

    def test_prev_tab_wraps(self, session: Session) -> None:
        session.prev_tab()
        assert session.kind is ResourceKind.SECRET


@pytest.mark.unit
class TestBanners:
    """Tests for banner expiry."""

    def test_success_expires(self, session: Session) -> None:
        session.set_success("done")
        assert session.message_time is not None
        session.clear_stale_messages(now=session.message_time + SUCCESS_BANNER_SECONDS)
        assert session.last_success is None

    def test_error_outlives_success_window(self, session: Session) -> None:
        session.set_error("boom")
        assert session.message_time is not None
        session.clear_stale_messages(now=session.message_time + SUCCESS_BANNER_SECONDS)
        assert session.last_error == "boom"
        session.clear_stale_messages(now=session.message_time + ERROR_BANNER_SECONDS)
        assert session.last_error is None

    def test_access_denied_is_sticky(self, session: Session) -> None:
        session.set_error("Access denied: cannot list pods")
        assert session.message_time is not None
        session.clear_stale_messages(now=session.message_time + 1000)
        assert session.last_error == "Access denied: cannot list pods"

    def test_reset_for_watch_clears_access_denied(self, session: Session) -> None:
        session.set_error("Access denied: cannot list pods")
        session.reset_for_watch()
        assert session.last_error is None
        assert session.loading

    def test_reset_for_watch_keeps_other_errors(self, session: Session) -> None:
        session.set_error("Watcher error: boom")
        session.reset_for_watch()
        assert session.last_error == "Watcher error: boom"


@pytest.mark.unit
class TestNamespaces:
    """Tests for namespace list handling."""

    def test_seed_adds_current(self, session: Session) -> None:
        session.namespace = "team-a"
        session.seed_namespaces(["prod", "dev"])
        assert session.namespaces == ["dev", "prod", "team-a"]

    def test_filter_moves_cursor_to_first_match(self, session: Session) -> None:
        session.seed_namespaces(["prod", "dev", "kube-system"])
        session.namespace_input = "DE"
        session.update_namespace_filter()
        assert session.filtered_namespaces == ["default", "dev"]
        assert session.popup_cursor == 0

    def test_reset_popup_points_at_current(self, session: Session) -> None:
        session.seed_namespaces(["prod", "dev"])
        session.reset_namespace_popup()
        assert session.filtered_namespaces[session.popup_cursor or 0] == "default"


@pytest.mark.unit
class TestSecrets:
    """Tests for opening decoded secrets."""

    def test_open_and_close_secret(self, session: Session) -> None:
        session.kind = ResourceKind.SECRET
        session.set_items([SecretItem(name="db", data={"user": "YWRtaW4=", "blob": "//79"})])
        session.cursor = 0

        assert session.open_secret()
        assert session.secret_decoded == [("blob", "<binary>"), ("user", "admin")]
        assert not session.secret_revealed

        session.close_secret()
        assert session.secret_decoded is None

    def test_open_without_selection(self, session: Session) -> None:
        assert not session.open_secret()
