"""
Tests for content-root selection and chrome stripping.
"""

from scrapegoat.extractor import extract_content
from scrapegoat.scraper import parse_html

HTML = """
<html><head><title>T</title><style>p { color: red }</style></head>
<body>
  <header><p>Site header</p></header>
  <nav><a href="/">Home</a></nav>
  <div class="sidebar">Sidebar links</div>
  <main id="content">
    <h1>Article</h1>
    <p>Body text.</p>
    <script>var tracking = 1;</script>
    <!-- hidden comment -->
  </main>
  <aside>Related</aside>
  <footer>Copyright</footer>
</body></html>
"""


class TestExtractContent:

    def test_strips_chrome(self):
        root = extract_content(HTML)
        text = root.get_text(" ", strip=True)
        assert "Article" in text
        assert "Body text." in text
        for chrome in ("Site header", "Home", "Sidebar links", "Related", "Copyright", "tracking"):
            assert chrome not in text
        assert "hidden comment" not in str(root)

    def test_selector_match(self):
        root = extract_content(HTML, "#content")
        assert root.name == "main"
        assert root.find("h1").get_text() == "Article"

    def test_unmatched_selector_uses_body(self):
        root = extract_content(HTML, "#missing")
        assert root.name == "body"
        assert "Body text." in root.get_text()

    def test_invalid_selector_uses_body(self):
        root = extract_content(HTML, "div[[[")
        assert root.name == "body"
        assert "Article" in root.get_text()

    def test_empty_after_filtering_falls_back(self):
        html = "<html><body><nav>Only navigation here</nav><footer>And a footer</footer></body></html>"
        root = extract_content(html)
        assert "Only navigation here" in root.get_text()

    def test_strip_class_nav(self):
        html = '<html><body><div class="nav">Menu</div><p>Content</p></body></html>'
        root = extract_content(html)
        assert "Menu" not in root.get_text()
        assert "Content" in root.get_text()


class TestParseHtml:

    def test_fragment(self):
        soup = parse_html("<p>Just a fragment</p>")
        assert soup.find("p").get_text() == "Just a fragment"

    def test_empty_input(self):
        soup = parse_html("")
        assert soup.get_text() == ""
