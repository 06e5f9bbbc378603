"""
Tests for services/attachment_pipeline.py - classification of parsed attachments.

Test Areas:
1. Descriptor normalization
2. Inline image rewriting
3. Oversize / error / downloadable outcomes
4. Mixed message scenarios
"""

import base64
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from services.attachment_pipeline import (
    INLINE_SKIP_REASON,
    PLACEHOLDER_IMAGE_SRC,
    AttachmentDescriptor,
    AttachmentPipeline,
    AttachmentStatus,
    build_cid_map,
    rewrite_inline_images,
    strip_angle_brackets,
)
from services.errors import AttachmentStorageError
from services.size_policy import BYTES_PER_MEGABYTE


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def pipeline(manager):
    return AttachmentPipeline(manager, url_for=lambda attachment_id: f"/attachments/{attachment_id}")


# ============================================================================
# Normalization
# ============================================================================

class TestDescriptorNormalization:

    def test_defaults_for_missing_fields(self):
        descriptor = AttachmentDescriptor.from_raw({})
        assert descriptor.filename == "unnamed"
        assert descriptor.mime_type == "application/octet-stream"
        assert descriptor.disposition == "attachment"
        assert descriptor.content == b""
        assert descriptor.content_id is None

    def test_camel_case_keys_and_objects(self):
        from_dict = AttachmentDescriptor.from_raw(
            {"filename": "a.png", "mimeType": "image/png", "contentId": "<logo>", "content": b"x"}
        )
        from_object = AttachmentDescriptor.from_raw(
            SimpleNamespace(filename="a.png", mime_type="image/png", content_id="<logo>", content=b"x")
        )
        assert from_dict == from_object
        assert from_dict.normalized_content_id == "logo"

    def test_content_coercion(self):
        assert AttachmentDescriptor.from_raw({"content": "héllo"}).content == "héllo".encode("utf-8")
        assert AttachmentDescriptor.from_raw({"content": bytearray(b"ab")}).content == b"ab"
        assert AttachmentDescriptor.from_raw({"content": [104, 105]}).content == b"hi"
        assert AttachmentDescriptor.from_raw({"content": object()}).content == b""

    def test_disposition_is_lowercased(self):
        assert AttachmentDescriptor.from_raw({"disposition": "INLINE"}).disposition == "inline"

    def test_strip_angle_brackets(self):
        assert strip_angle_brackets("<image001@example>") == "image001@example"
        assert strip_angle_brackets("plain") == "plain"


# ============================================================================
# Inline Rewriting
# ============================================================================

class TestInlineRewriting:

    def test_both_quote_styles_and_case_insensitive(self):
        logo = AttachmentDescriptor.from_raw({"content_id": "<logo>", "mime_type": "image/png", "content": PNG_BYTES})
        html = "<img SRC='CID:logo'><img src=\"cid:logo\">"

        rewritten, inline_ids = rewrite_inline_images(html, build_cid_map([logo]))

        encoded = base64.b64encode(PNG_BYTES).decode("ascii")
        assert rewritten.count(f'src="data:image/png;base64,{encoded}"') == 2
        assert inline_ids == {id(logo)}

    def test_unmatched_reference_left_untouched(self):
        html = '<img src="cid:missing">'
        rewritten, inline_ids = rewrite_inline_images(html, build_cid_map([]))
        assert rewritten == html
        assert inline_ids == set()

    def test_empty_content_uses_placeholder(self):
        broken = AttachmentDescriptor.from_raw({"content_id": "<broken>", "mime_type": "image/png"})
        rewritten, inline_ids = rewrite_inline_images('<img src="cid:broken">', build_cid_map([broken]))
        assert rewritten == f"<img {PLACEHOLDER_IMAGE_SRC}>"
        assert 'alt="Image unavailable"' in rewritten
        assert inline_ids == {id(broken)}

    def test_encoding_failure_uses_placeholder(self):
        logo = AttachmentDescriptor.from_raw({"content_id": "logo", "content": PNG_BYTES})
        with patch("services.attachment_pipeline.encode_data_uri", side_effect=ValueError("bad bytes")):
            rewritten, _ = rewrite_inline_images('<img src="cid:logo">', build_cid_map([logo]))
        assert PLACEHOLDER_IMAGE_SRC in rewritten

    @pytest.mark.asyncio
    async def test_missing_mime_type_falls_back_to_png(self, pipeline):
        """
        Given: An inline image part with no declared MIME type
        When: The pipeline rewrites the HTML body
        Then: The data URI is typed image/png while the reported type stays generic
        """
        raw = [{"filename": "logo", "content": b"\x89PNG", "content_id": "<logo>"}]

        result = await pipeline.process(raw, '<img src="cid:logo">')

        encoded = base64.b64encode(b"\x89PNG").decode("ascii")
        assert result.html == f'<img src="data:image/png;base64,{encoded}">'
        assert result.attachments[0].status == AttachmentStatus.INLINE
        assert result.attachments[0].mime_type == "application/octet-stream"

    def test_declared_mime_type_is_kept_in_data_uri(self):
        logo = AttachmentDescriptor.from_raw({"content_id": "logo", "mime_type": "image/gif", "content": b"GIF8"})
        rewritten, _ = rewrite_inline_images('<img src="cid:logo">', build_cid_map([logo]))
        assert rewritten.startswith('<img src="data:image/gif;base64,')

    def test_later_duplicate_content_id_wins(self):
        first = AttachmentDescriptor.from_raw({"content_id": "dup", "content": b"1"})
        second = AttachmentDescriptor.from_raw({"content_id": "<dup>", "content": b"2"})
        assert build_cid_map([first, second])["dup"] is second


# ============================================================================
# Outcomes
# ============================================================================

class TestPipelineOutcomes:

    @pytest.mark.asyncio
    async def test_oversize_and_small_attachment(self, pipeline, manager, storage_dir):
        """
        Given: A 50 MB attachment and a 1 KB attachment with a 10 MB limit
        When: The pipeline runs
        Then: The large one is skipped with the formatted reason and never stored,
              the small one is downloadable
        """
        raw = [
            {"filename": "huge.bin", "mime_type": "application/octet-stream", "content": b"\0" * (50 * BYTES_PER_MEGABYTE)},
            {"filename": "small.txt", "mime_type": "text/plain", "content": b"a" * 1024},
        ]

        result = await pipeline.process(raw, "")

        huge, small = result.attachments
        assert huge.status == AttachmentStatus.SKIPPED_OVERSIZE
        assert huge.skipped is True
        assert huge.skip_reason == "Attachment size exceeds limit (50.0MB > 10.0MB)"
        assert huge.id is None and huge.download_url is None
        assert huge.size == 50 * BYTES_PER_MEGABYTE

        assert small.status == AttachmentStatus.DOWNLOADABLE
        assert small.skipped is False
        assert small.download_url == f"/attachments/{small.id}"
        assert [p.name for p in storage_dir.iterdir()] == [small.id]
        assert len(manager.index) == 1

    @pytest.mark.asyncio
    async def test_inline_image_and_regular_attachment(self, pipeline, manager):
        """
        Given: HTML referencing cid:logo plus a PDF attachment
        When: The pipeline runs
        Then: The logo is embedded and marked inline without storage, the PDF is stored
        """
        raw = [
            {"filename": "logo.png", "mime_type": "image/png", "content": PNG_BYTES, "content_id": "<logo>", "disposition": "inline"},
            {"filename": "doc.pdf", "mime_type": "application/pdf", "content": b"%PDF-1.4"},
        ]

        result = await pipeline.process(raw, '<p>Hi</p><img src="cid:logo">')

        logo, doc = result.attachments
        assert "cid:logo" not in result.html
        assert "data:image/png;base64," in result.html
        assert logo.status == AttachmentStatus.INLINE
        assert logo.is_inline is True
        assert logo.skipped is True
        assert logo.skip_reason == INLINE_SKIP_REASON
        assert logo.id is None
        assert logo.content_id == "<logo>"
        assert doc.status == AttachmentStatus.DOWNLOADABLE
        assert len(manager.index) == 1

    @pytest.mark.asyncio
    async def test_unreferenced_content_id_stays_downloadable(self, pipeline):
        raw = [{"filename": "sig.png", "mime_type": "image/png", "content": PNG_BYTES, "content_id": "<sig>"}]

        result = await pipeline.process(raw, "<p>No images here</p>")

        assert result.attachments[0].status == AttachmentStatus.DOWNLOADABLE
        assert result.attachments[0].is_inline is False

    @pytest.mark.asyncio
    async def test_oversize_inline_image_is_still_inline(self, pipeline):
        big_image = b"\x89PNG" + b"\0" * (11 * BYTES_PER_MEGABYTE)
        raw = [{"filename": "big.png", "mime_type": "image/png", "content": big_image, "content_id": "big"}]

        result = await pipeline.process(raw, '<img src="cid:big">')

        assert result.attachments[0].status == AttachmentStatus.INLINE

    @pytest.mark.asyncio
    async def test_storage_failure_is_recovered_per_attachment(self, pipeline, manager):
        """
        Given: Storage fails for the first attachment only
        When: The pipeline runs
        Then: The first is skipped with the error, the second is still stored
        """
        original_persist = manager.store.persist
        calls = {"count": 0}

        def flaky_persist(data, filename, mime_type):
            calls["count"] += 1
            if calls["count"] == 1:
                raise AttachmentStorageError("Unable to persist attachment contents: disk full")
            return original_persist(data, filename, mime_type)

        raw = [
            {"filename": "first.txt", "content": b"1"},
            {"filename": "second.txt", "content": b"2"},
        ]
        with patch.object(manager.store, "persist", side_effect=flaky_persist):
            result = await pipeline.process(raw, None)

        first, second = result.attachments
        assert first.status == AttachmentStatus.SKIPPED_ERROR
        assert first.skip_reason.startswith("Failed to save attachment: ")
        assert "disk full" in first.skip_reason
        assert second.status == AttachmentStatus.DOWNLOADABLE

    @pytest.mark.asyncio
    async def test_order_and_fields_preserved(self, pipeline):
        raw = [{"filename": f"f{i}.txt", "mime_type": "text/plain", "content": b"x" * i} for i in range(1, 5)]

        result = await pipeline.process(raw, "")

        assert [a.filename for a in result.attachments] == ["f1.txt", "f2.txt", "f3.txt", "f4.txt"]
        assert [a.size for a in result.attachments] == [1, 2, 3, 4]
        assert all(a.disposition == "attachment" for a in result.attachments)
        assert len({a.id for a in result.attachments}) == 4

    @pytest.mark.asyncio
    async def test_no_attachments(self, pipeline):
        result = await pipeline.process(None, None)
        assert result.html == ""
        assert result.attachments == []
