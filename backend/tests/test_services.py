"""
Tests for the link service: creation rules and the resolve state machine.
"""

from datetime import timedelta

import pytest

from privacykit.errors import (
    CodeGenerationError,
    DuplicateCodeError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from privacykit.lifecycle import DenialReason
from privacykit.services import DenialInfo, LinkService, RedirectTarget


class ScriptedGenerator:
    """Hands out a fixed sequence of codes, ignoring the store."""

    def __init__(self, *codes):
        self.codes = list(codes)
        self.calls = 0

    def generate_unique_code(self) -> str:
        self.calls += 1
        return self.codes.pop(0)


class TestCreateLink:
    """Tests for LinkService.create_link()."""

    def test_create_basic(self, service, store, sample_url):
        created = service.create_link(sample_url)

        assert len(created.short_code) == 6
        assert created.expires_at is None
        assert created.max_clicks is None

        record = store.get_by_code(created.short_code)
        assert record.original_url == sample_url
        assert record.click_count == 0
        assert record.active is True

    def test_created_at_is_truncated_to_milliseconds(self, service, clock, sample_url):
        created = service.create_link(sample_url)
        assert created.created_at.microsecond == 123000
        assert created.created_at == clock().replace(microsecond=123000)

    def test_expiry_is_created_at_plus_hours(self, service, store, sample_url):
        created = service.create_link(sample_url, expiry_hours=24, max_clicks=3)

        assert created.expires_at == created.created_at + timedelta(hours=24)
        assert created.max_clicks == 3

        record = store.get_by_code(created.short_code)
        assert record.expires_at == created.expires_at
        assert record.max_clicks == 3

    def test_fractional_hours(self, service, sample_url):
        created = service.create_link(sample_url, expiry_hours=0.5)
        assert created.expires_at - created.created_at == timedelta(minutes=30)

    @pytest.mark.parametrize("hours", [0, -1, -0.5])
    def test_non_positive_expiry_means_no_expiry(self, service, sample_url, hours):
        assert service.create_link(sample_url, expiry_hours=hours).expires_at is None

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_missing_url_is_rejected(self, service, url):
        with pytest.raises(ValidationError, match="original_url is required"):
            service.create_link(url)

    def test_unsafe_url_is_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_link("javascript:alert(1)")

    def test_blocked_domain_is_rejected(self, store, clock):
        guarded = LinkService(store, clock=clock, blocked_domains=["evil.test"])
        with pytest.raises(ValidationError, match="not allowed"):
            guarded.create_link("https://sub.evil.test/login")

    @pytest.mark.parametrize("max_clicks", [0, -3, 2.5, "3", True])
    def test_bad_max_clicks_is_rejected(self, service, sample_url, max_clicks):
        with pytest.raises(ValidationError):
            service.create_link(sample_url, max_clicks=max_clicks)

    @pytest.mark.parametrize("hours", [float("nan"), float("inf"), "24"])
    def test_bad_expiry_is_rejected(self, service, sample_url, hours):
        with pytest.raises(ValidationError):
            service.create_link(sample_url, expiry_hours=hours)

    def test_huge_expiry_is_rejected(self, service, sample_url):
        with pytest.raises(ValidationError):
            service.create_link(sample_url, expiry_hours=1e12)

    def test_codes_are_unique(self, service, sample_url):
        codes = {service.create_link(sample_url).short_code for _ in range(50)}
        assert len(codes) == 50

    def test_duplicate_insert_is_retried_once(self, store, clock, sample_url):
        store.create(sample_url, "dup111", None, None, clock())
        generator = ScriptedGenerator("dup111", "fresh1")
        svc = LinkService(store, generator=generator, clock=clock)

        created = svc.create_link(sample_url)

        assert created.short_code == "fresh1"
        assert generator.calls == 2

    def test_second_duplicate_surfaces(self, store, clock, sample_url):
        store.create(sample_url, "dup111", None, None, clock())
        generator = ScriptedGenerator("dup111", "dup111", "never1")
        svc = LinkService(store, generator=generator, clock=clock)

        with pytest.raises(DuplicateCodeError):
            svc.create_link(sample_url)
        assert generator.calls == 2

    def test_generation_failure_surfaces(self, store, clock, sample_url):
        class Exhausted:
            def generate_unique_code(self):
                raise CodeGenerationError("Failed to generate unique short code")

        svc = LinkService(store, generator=Exhausted(), clock=clock)
        with pytest.raises(CodeGenerationError):
            svc.create_link(sample_url)


class TestResolveLink:
    """Tests for LinkService.resolve_link()."""

    def test_unknown_code(self, service):
        with pytest.raises(NotFoundError):
            service.resolve_link("nope42")

    def test_resolve_counts_click(self, service, store, sample_url):
        code = service.create_link(sample_url).short_code

        result = service.resolve_link(code)

        assert result == RedirectTarget(original_url=sample_url, click_count=1)
        assert store.get_by_code(code).click_count == 1

    def test_click_limit_lifecycle(self, service, store, sample_url):
        code = service.create_link(sample_url, expiry_hours=24, max_clicks=3).short_code

        for expected in (1, 2, 3):
            result = service.resolve_link(code)
            assert isinstance(result, RedirectTarget)
            assert result.click_count == expected

        record = store.get_by_code(code)
        assert record.click_count == 3
        assert record.active is False

        denied = service.resolve_link(code)
        assert isinstance(denied, DenialInfo)
        assert denied.reason is DenialReason.ALREADY_INACTIVE
        assert store.get_by_code(code).click_count == 3

    def test_single_use_link(self, service, store, sample_url):
        code = service.create_link(sample_url, max_clicks=1).short_code

        assert isinstance(service.resolve_link(code), RedirectTarget)
        assert store.get_by_code(code).active is False

        second = service.resolve_link(code)
        assert second.reason is DenialReason.ALREADY_INACTIVE

    def test_unlimited_link_keeps_redirecting(self, service, store, sample_url):
        code = service.create_link(sample_url).short_code

        for _ in range(1000):
            assert isinstance(service.resolve_link(code), RedirectTarget)

        record = store.get_by_code(code)
        assert record.click_count == 1000
        assert record.active is True

    def test_time_expiry_deactivates_then_reports_inactive(self, service, store, clock, sample_url):
        created = service.create_link(sample_url, expiry_hours=1)
        code = created.short_code

        clock.now = created.expires_at
        assert isinstance(service.resolve_link(code), RedirectTarget)

        clock.advance(milliseconds=1)
        first = service.resolve_link(code)
        assert first.reason is DenialReason.TIME_EXPIRED
        assert first.expires_at == created.expires_at

        record = store.get_by_code(code)
        assert record.active is False
        assert record.click_count == 1

        # the latch is one-way, even if the clock were to run backwards
        clock.advance(hours=-2)
        assert service.resolve_link(code).reason is DenialReason.ALREADY_INACTIVE

    def test_click_limit_denial_on_row_left_at_limit(self, service, store, clock, sample_url):
        """A row that hit its limit without being latched off is deactivated on read."""
        link_id = store.create(sample_url, "limit1", 2, None, clock())
        assert store.increment_and_maybe_deactivate(link_id, 1, False)
        assert store.increment_and_maybe_deactivate(link_id, 2, False)

        denied = service.resolve_link("limit1")

        assert denied.reason is DenialReason.CLICK_LIMIT_REACHED
        assert denied.max_clicks == 2
        assert store.get_by_code("limit1").active is False
        assert service.resolve_link("limit1").reason is DenialReason.ALREADY_INACTIVE

    def test_denied_resolve_never_counts(self, service, store, sample_url):
        code = service.create_link(sample_url, max_clicks=1).short_code
        service.resolve_link(code)
        for _ in range(5):
            service.resolve_link(code)
        assert store.get_by_code(code).click_count == 1

    def test_decision_uses_row_read_under_the_write_lock(self, store, clock, sample_url):
        """A click counted elsewhere after an earlier read is still seen."""
        svc = LinkService(store, clock=clock)
        code = svc.create_link(sample_url, max_clicks=2).short_code
        stale = store.get_by_code(code)

        assert store.increment_and_maybe_deactivate(stale.id, 1, False)

        result = svc.resolve_link(code)
        assert result.click_count == 2
        assert store.get_by_code(code).active is False
        assert svc.resolve_link(code).reason is DenialReason.ALREADY_INACTIVE

    def test_store_failure_surfaces(self, service, store, sample_url):
        code = service.create_link(sample_url).short_code
        store.close()
        with store.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE links")

        with pytest.raises(StorageError):
            service.resolve_link(code)


class TestGetLink:
    """Tests for LinkService.get_link()."""

    def test_get_link_does_not_count(self, service, sample_url):
        code = service.create_link(sample_url, max_clicks=2).short_code
        for _ in range(3):
            record = service.get_link(code)
        assert record.click_count == 0
        assert record.active is True

    def test_get_unknown_link(self, service):
        with pytest.raises(NotFoundError):
            service.get_link("nope42")
