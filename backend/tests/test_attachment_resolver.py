"""
Attachment resolver tests.

The Resend REST API is faked with httpx.MockTransport and the SDK with a
Mock; the retry sleep is replaced by a Mock so nothing actually waits.
"""

import httpx
import pytest
from unittest.mock import Mock, call, patch

from app.config import Settings
from app.models.inbound_email import AttachmentDescriptor, AttachmentStub
from app.services.attachment_resolver import (
    AttachmentResolver,
    RETRY_DELAY_SECONDS,
    configure_resend,
    is_image_attachment,
    select_image_attachment,
)


EMAIL_ID = "em_1"
LIST_PATH = f"/emails/receiving/{EMAIL_ID}/attachments"


def _attachment_path(attachment_id: str) -> str:
    return f"{LIST_PATH}/{attachment_id}"


def _attachment_json(
    attachment_id: str = "att_1",
    filename: str | None = "receipt.png",
    content_type: str | None = "image/png",
    download_url: str | None = "https://files.resend.test/att_1?sig=abc",
) -> dict:
    return {
        "id": attachment_id,
        "filename": filename,
        "content_type": content_type,
        "download_url": download_url,
        "size": 1024,
        "expires_at": "2024-06-15T11:30:00Z",
    }


def _make_http_client(routes: dict):
    """
    Build an httpx.Client over a MockTransport.

    routes maps a URL path to a list of (status, json_body) tuples, consumed
    in order; the last entry repeats. A tuple may instead be an exception
    instance, which is raised. Unknown paths answer 404.

    Returns (client, requested_paths).
    """
    requested: list[str] = []
    queues = {path: list(entries) for path, entries in routes.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        queue = queues.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"message": "not found"})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, Exception):
            raise entry
        status, body = entry
        return httpx.Response(status, json=body)

    client = httpx.Client(
        transport=httpx.MockTransport(handler),
        base_url="https://api.resend.com",
    )
    return client, requested


def _make_resolver(routes: dict | None = None, sdk=None):
    client, requested = _make_http_client(routes or {})
    sleep = Mock()
    resolver = AttachmentResolver(client, sdk=sdk, sleep=sleep)
    return resolver, requested, sleep


# ===========================================================================
# Selection rule
# ===========================================================================

class TestSelectImageAttachment:
    """First attachment with an image extension or image/* type wins."""

    def test_png_after_pdf_is_selected(self):
        pdf = AttachmentDescriptor(id="a", filename="statement.pdf", content_type="application/pdf")
        png = AttachmentDescriptor(id="b", filename="receipt.png", content_type="image/png")

        assert select_image_attachment([pdf, png]) == png

    def test_first_match_not_best_match(self):
        webp = AttachmentDescriptor(id="a", filename="small.webp")
        jpg = AttachmentDescriptor(id="b", filename="large.jpg")

        assert select_image_attachment([webp, jpg]) == webp

    @pytest.mark.parametrize("filename", ["RECIBO.JPG", "pago.jpeg", "x.Png", "y.webp"])
    def test_extension_is_case_insensitive(self, filename):
        assert is_image_attachment(AttachmentDescriptor(filename=filename)) is True

    def test_content_type_prefix_is_enough(self):
        attachment = AttachmentDescriptor(filename="blob", content_type="IMAGE/HEIC")
        assert is_image_attachment(attachment) is True

    def test_extension_needs_a_dot(self):
        assert is_image_attachment(AttachmentDescriptor(filename="jpg")) is False

    def test_no_image_returns_none(self):
        attachments = [
            AttachmentDescriptor(filename="notes.txt", content_type="text/plain"),
            AttachmentDescriptor(filename=None, content_type=None),
        ]
        assert select_image_attachment(attachments) is None


# ===========================================================================
# Strategy order
# ===========================================================================

class TestResolveStrategyOrder:
    """SDK, then REST listing, then per-stub lookups."""

    def test_sdk_result_short_circuits(self):
        sdk = Mock()
        sdk.list.return_value = {"object": "list", "data": [_attachment_json()]}
        resolver, requested, _ = _make_resolver(sdk=sdk)

        result = resolver.resolve(EMAIL_ID, ())

        assert [a.id for a in result] == ["att_1"]
        sdk.list.assert_called_once_with(email_id=EMAIL_ID)
        assert requested == []

    def test_sdk_error_falls_through_to_rest(self):
        sdk = Mock()
        sdk.list.side_effect = RuntimeError("receiving API unavailable")
        resolver, requested, _ = _make_resolver(
            {LIST_PATH: [(200, {"data": [_attachment_json()]})]}, sdk=sdk
        )

        result = resolver.resolve(EMAIL_ID, ())

        assert result[0].download_url == "https://files.resend.test/att_1?sig=abc"
        assert requested == [LIST_PATH]
        sdk.list.assert_called_once()

    def test_missing_sdk_goes_straight_to_rest(self):
        resolver, requested, _ = _make_resolver({LIST_PATH: [(200, [_attachment_json()])]})

        result = resolver.resolve(EMAIL_ID, ())

        assert len(result) == 1
        assert requested == [LIST_PATH]

    def test_rest_error_status_falls_through_to_stubs(self):
        stub = AttachmentStub(id="att_1", filename="receipt.png", content_type="image/png")
        resolver, requested, _ = _make_resolver({
            LIST_PATH: [(500, {"message": "boom"})],
            _attachment_path("att_1"): [(200, {"data": _attachment_json()})],
        })

        result = resolver.resolve(EMAIL_ID, (stub,))

        assert [a.id for a in result] == ["att_1"]
        assert requested == [LIST_PATH, _attachment_path("att_1")]

    def test_empty_rest_listing_falls_through_to_stubs(self):
        sdk = Mock()
        sdk.list.side_effect = RuntimeError("nope")
        stub = AttachmentStub(id="att_1")
        resolver, requested, _ = _make_resolver({
            LIST_PATH: [(200, {"data": []})],
            _attachment_path("att_1"): [(200, _attachment_json())],
        }, sdk=sdk)

        result = resolver.resolve(EMAIL_ID, (stub,))

        assert len(result) == 1
        assert requested == [LIST_PATH, _attachment_path("att_1")]

    def test_rest_transport_error_falls_through_to_stubs(self):
        stub = AttachmentStub(id="att_1")
        resolver, _, _ = _make_resolver({
            LIST_PATH: [httpx.ConnectError("connection refused")],
            _attachment_path("att_1"): [(200, _attachment_json())],
        })

        result = resolver.resolve(EMAIL_ID, (stub,))

        assert len(result) == 1

    def test_nothing_anywhere_returns_none(self):
        resolver, _, _ = _make_resolver({LIST_PATH: [(200, {"data": []})]})

        assert resolver.resolve(EMAIL_ID, ()) is None

    def test_all_stubs_failing_returns_none(self):
        stub = AttachmentStub(id="att_1")
        resolver, _, _ = _make_resolver({
            LIST_PATH: [(200, {"data": []})],
            _attachment_path("att_1"): [(403, {"message": "forbidden"})],
        })

        assert resolver.resolve(EMAIL_ID, (stub,)) is None

    def test_listing_without_urls_falls_through_to_stubs(self):
        sdk = Mock()
        sdk.list.return_value = {"data": [_attachment_json(download_url=None)]}
        stub = AttachmentStub(id="att_1", filename="r.png")
        resolver, requested, _ = _make_resolver({
            LIST_PATH: [(200, [{"id": "att_1", "filename": "r.png"}])],
            _attachment_path("att_1"): [(200, _attachment_json())],
        }, sdk=sdk)

        result = resolver.resolve(EMAIL_ID, (stub,))

        assert [a.download_url for a in result] == ["https://files.resend.test/att_1?sig=abc"]
        assert requested == [LIST_PATH, _attachment_path("att_1")]

    def test_listing_keeps_only_entries_with_urls(self):
        resolver, requested, _ = _make_resolver({LIST_PATH: [(200, {"data": [
            _attachment_json("att_1", download_url=None),
            _attachment_json("att_2"),
        ]})]})

        result = resolver.resolve(EMAIL_ID, ())

        assert [a.id for a in result] == ["att_2"]
        assert requested == [LIST_PATH]


# ===========================================================================
# Per-stub retrieval with bounded retry
# ===========================================================================

class TestFetchEachStub:
    """404 is retried 3 times, 500 ms apart; other failures are terminal."""

    def test_success_on_fourth_attempt(self):
        stub = AttachmentStub(id="att_1")
        path = _attachment_path("att_1")
        resolver, requested, sleep = _make_resolver({
            path: [(404, {}), (404, {}), (404, {}), (200, {"data": _attachment_json()})],
        })

        result = resolver.fetch_each_stub(EMAIL_ID, (stub,))

        assert [a.id for a in result] == ["att_1"]
        assert requested == [path] * 4
        assert sleep.call_args_list == [call(RETRY_DELAY_SECONDS)] * 3

    def test_four_404s_drop_only_that_stub(self):
        missing = AttachmentStub(id="att_missing")
        present = AttachmentStub(id="att_2")
        resolver, requested, sleep = _make_resolver({
            _attachment_path("att_missing"): [(404, {})],
            _attachment_path("att_2"): [(200, _attachment_json("att_2", "pago.jpg", "image/jpeg"))],
        })

        result = resolver.fetch_each_stub(EMAIL_ID, (missing, present))

        assert [a.id for a in result] == ["att_2"]
        assert requested.count(_attachment_path("att_missing")) == 4
        assert sleep.call_count == 3

    def test_non_404_error_is_not_retried(self):
        broken = AttachmentStub(id="att_broken")
        present = AttachmentStub(id="att_2")
        resolver, requested, sleep = _make_resolver({
            _attachment_path("att_broken"): [(500, {"message": "internal"})],
            _attachment_path("att_2"): [(200, _attachment_json("att_2"))],
        })

        result = resolver.fetch_each_stub(EMAIL_ID, (broken, present))

        assert [a.id for a in result] == ["att_2"]
        assert requested.count(_attachment_path("att_broken")) == 1
        sleep.assert_not_called()

    def test_attachment_without_download_url_is_dropped(self):
        stub = AttachmentStub(id="att_1")
        resolver, _, _ = _make_resolver({
            _attachment_path("att_1"): [(200, _attachment_json(download_url=None))],
        })

        assert resolver.fetch_each_stub(EMAIL_ID, (stub,)) == []

    def test_stub_metadata_fills_gaps(self):
        stub = AttachmentStub(id="att_1", filename="voucher.png", content_type="image/png")
        resolver, _, _ = _make_resolver({
            _attachment_path("att_1"): [(200, {"download_url": "https://files.resend.test/x"})],
        })

        result = resolver.fetch_each_stub(EMAIL_ID, (stub,))

        assert result == [
            AttachmentDescriptor(
                id="att_1",
                filename="voucher.png",
                content_type="image/png",
                download_url="https://files.resend.test/x",
            )
        ]

    def test_transport_error_skips_stub(self):
        stub = AttachmentStub(id="att_1")
        resolver, _, sleep = _make_resolver({
            _attachment_path("att_1"): [httpx.ReadTimeout("timed out")],
        })

        assert resolver.fetch_each_stub(EMAIL_ID, (stub,)) == []
        sleep.assert_not_called()

    def test_no_stubs_returns_none(self):
        resolver, requested, _ = _make_resolver()

        assert resolver.fetch_each_stub(EMAIL_ID, ()) is None
        assert requested == []


# ===========================================================================
# SDK configuration
# ===========================================================================

def _make_settings(resend_api_key: str) -> Settings:
    return Settings(
        webhook_secret="whsec_dGVzdC1zZWNyZXQ=",
        resend_api_key=resend_api_key,
        cloudinary_cloud_name="demo",
        cloudinary_api_key="cld-key",
        cloudinary_api_secret="cld-secret",
        ocr_api_key="ocr-key",
        google_sheet_id="sheet-123",
        google_service_account_file="/secrets/service-account.json",
    )


class TestConfigureResend:

    def test_sets_sdk_api_key(self):
        settings = _make_settings("re_live_key")

        with patch("app.services.attachment_resolver.resend") as mock_resend:
            configure_resend(settings)

        assert mock_resend.api_key == "re_live_key"

    def test_from_settings_leaves_sdk_key_alone(self):
        settings = _make_settings("re_other")

        with patch("app.services.attachment_resolver.resend") as mock_resend:
            mock_resend.api_key = "re_startup"
            with AttachmentResolver.from_settings(settings):
                pass

        assert mock_resend.api_key == "re_startup"
