"""Tests for viewer-link resolution.

Tests cover:
1. Direct document URLs pass through untouched
2. Each strategy in the chain (download link, embed, markup, query, suffix)
3. Short-circuiting at the first verified binary
4. Rendered markup from a browser session
5. Failure when nothing verifies
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from ir_financials.errors import ResolutionFailure
from ir_financials.scraper.browser import FrameMarkup
from ir_financials.scraper.resolver import ViewerPage, ViewerResolver, is_direct_document_url, suffix_guess

SITE = "https://www.example.com"

ClientFactory = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]


def site(pages: dict[str, str], pdfs: set[str]) -> Callable[[httpx.Request], httpx.Response]:
    """Serve HTML ``pages`` and PDF binaries at ``pdfs``; everything else is 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in pdfs:
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.7")
        if url in pages:
            return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, text=pages[url])
        return httpx.Response(404, text="not found")

    return handler


class TestIsDirectDocumentUrl:
    """Tests for direct-URL detection."""

    def test_pdf_path(self) -> None:
        """Paths ending in .pdf are direct, regardless of query or case."""
        assert is_direct_document_url(f"{SITE}/AR-2023.PDF?v=2")

    def test_viewer_path(self) -> None:
        """HTML viewers are not direct."""
        assert not is_direct_document_url(f"{SITE}/viewer.html?file=ar.pdf")


class TestStrategies:
    """Tests for each resolution strategy through the resolver."""

    def test_direct_url_makes_no_requests(self) -> None:
        """A direct URL is returned without touching the network."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError(f"unexpected request {request.url}")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert ViewerResolver(client).resolve(f"{SITE}/ar.pdf") == f"{SITE}/ar.pdf"

    def test_viewer_serving_binary(self, mock_client: ClientFactory) -> None:
        """A viewer URL that already serves a PDF resolves to itself."""
        viewer = f"{SITE}/documents/view?id=42"
        with mock_client(site({}, {viewer})) as client:
            assert ViewerResolver(client).resolve(viewer) == viewer

    def test_download_link(self, mock_client: ClientFactory) -> None:
        """An anchor with a download attribute wins."""
        viewer = f"{SITE}/reports/2023"
        page = '<html><body><a href="/about">About</a><a download href="/files/ar-2023.pdf">Get it</a></body></html>'
        with mock_client(site({viewer: page}, {f"{SITE}/files/ar-2023.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == f"{SITE}/files/ar-2023.pdf"

    def test_labelled_download_prefers_pdf(self, mock_client: ClientFactory) -> None:
        """Among labelled download links, one naming a PDF is preferred."""
        viewer = f"{SITE}/reports/2022"
        page = (
            "<html><body>"
            '<a href="/downloads/center">Download centre</a>'
            '<button data-url="/files/ar-2022.pdf" class="btn-download">Save</button>'
            "</body></html>"
        )
        with mock_client(site({viewer: page}, {f"{SITE}/files/ar-2022.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == f"{SITE}/files/ar-2022.pdf"

    def test_embedded_pdfjs_viewer(self, mock_client: ClientFactory) -> None:
        """A pdf.js iframe is unwrapped to its file parameter."""
        viewer = f"{SITE}/reports/2022.html"
        page = '<html><body><iframe src="/pdfjs/web/viewer.html?file=%2Fdocs%2Far-2022.pdf"></iframe></body></html>'
        with mock_client(site({viewer: page}, {f"{SITE}/docs/ar-2022.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == f"{SITE}/docs/ar-2022.pdf"

    def test_markup_pattern_in_script(self, mock_client: ClientFactory) -> None:
        """PDF URLs inside script JSON (escaped slashes) are found."""
        viewer = f"{SITE}/reports/2021.html"
        page = '<html><body><script>window.__DATA__={"doc":"https:\\/\\/cdn.example.com\\/ar\\/2021.pdf"}</script></body></html>'
        with mock_client(site({viewer: page}, {"https://cdn.example.com/ar/2021.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == "https://cdn.example.com/ar/2021.pdf"

    def test_query_parameter(self, mock_client: ClientFactory) -> None:
        """A URL-valued query parameter of the viewer is tried."""
        viewer = f"{SITE}/viewer?doc=%2Ffiles%2Fannual.pdf"
        with mock_client(site({viewer: "<html><body>Loading</body></html>"}, {f"{SITE}/files/annual.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == f"{SITE}/files/annual.pdf"

    def test_suffix_guess(self, mock_client: ClientFactory) -> None:
        """The viewer path with a .pdf suffix is the last resort."""
        viewer = f"{SITE}/reports/ar2020.html"
        with mock_client(site({}, {f"{SITE}/reports/ar2020.pdf"})) as client:
            assert ViewerResolver(client).resolve(viewer) == f"{SITE}/reports/ar2020.pdf"

    def test_suffix_guess_strips_query(self) -> None:
        """Query and fragment are dropped from the constructed URL."""
        page = ViewerPage(viewer_url=f"{SITE}/ar/report.aspx?lang=en#p1", loader=lambda url: [])
        assert suffix_guess(page) == f"{SITE}/ar/report.pdf"


class TestResolverChain:
    """Tests for ordering, short-circuiting, and failure."""

    def test_short_circuits_on_first_binary(self, mock_client: ClientFactory) -> None:
        """Later strategies are not consulted once one verifies."""
        first = MagicMock(return_value=f"{SITE}/nope.pdf")
        second = MagicMock(return_value=f"{SITE}/ar.pdf")
        third = MagicMock(return_value=f"{SITE}/other.pdf")

        with mock_client(site({}, {f"{SITE}/ar.pdf", f"{SITE}/other.pdf"})) as client:
            resolver = ViewerResolver(client, strategies=[("a", first), ("b", second), ("c", third)])
            assert resolver.resolve(f"{SITE}/viewer") == f"{SITE}/ar.pdf"

        first.assert_called_once()
        second.assert_called_once()
        third.assert_not_called()

    def test_unresolvable_raises(self, mock_client: ClientFactory) -> None:
        """No verified candidate raises ResolutionFailure for the year."""
        viewer = f"{SITE}/reports/viewer"
        with mock_client(site({viewer: "<html><body>Nothing</body></html>"}, set())) as client:
            with pytest.raises(ResolutionFailure) as exc_info:
                ViewerResolver(client).resolve(viewer, fiscal_year=2019)

        assert exc_info.value.fiscal_year == 2019
        assert not exc_info.value.terminal

    def test_head_not_allowed_falls_back_to_get(self, mock_client: ClientFactory) -> None:
        """Servers rejecting HEAD are probed with a streamed GET."""
        viewer = f"{SITE}/download?id=7"

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.7")

        with mock_client(handler) as client:
            assert ViewerResolver(client).resolve(viewer) == viewer

    def test_rendered_child_frame(self, mock_client: ClientFactory, fake_session: type) -> None:
        """Child frames reported by a browser session are used as sources."""
        viewer = f"{SITE}/reports/interactive"
        session = fake_session(
            markup={
                viewer: [
                    FrameMarkup(url=viewer, html="<html><body><div id='reader'></div></body></html>"),
                    FrameMarkup(url="https://cdn.example.com/ar-2024.pdf", html=""),
                ],
            },
        )

        with mock_client(site({}, {"https://cdn.example.com/ar-2024.pdf"})) as client:
            resolver = ViewerResolver(client, session=session)
            assert resolver.resolve(viewer) == "https://cdn.example.com/ar-2024.pdf"

        assert session.visited == [viewer]
