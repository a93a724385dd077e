from seoagent.extract import Heading, PageSnapshot, extract_snapshot, is_internal_href


RICH_HTML = """<!doctype html>
<html>
<head>
  <title>  Trail Running Shoes for Every Terrain  </title>
  <meta name="description" content="Lightweight trail shoes.">
  <link rel="canonical" href="https://example.com/shoes">
  <meta property="og:title" content="Trail Shoes">
  <meta property="og:description" content="Shoes for trails">
  <meta property="og:image" content="https://example.com/og.png">
  <meta name="twitter:card" content="summary">
  <script type="application/ld+json">{"@type": "Product", "name": "Trail"}</script>
  <script type="application/ld+json">{not json</script>
  <style>body { color: red }</style>
</head>
<body>
  <h1>Trail Shoes</h1>
  <h2>Why trail shoes</h2>
  <h3>Grip</h3>
  <p>Grip matters on <b>wet rock</b>.</p>
  <script>var hidden = "do not count me";</script>
  <!-- a comment that is not content -->
  <img src="a.jpg" alt="Shoe on rock">
  <img src="b.jpg">
  <a href="/about">About</a>
  <a href="#top">Top</a>
  <a href="https://other.com/">Other</a>
  <a href="mailto:hi@example.com">Mail</a>
  <a href="tel:+1555">Call</a>
</body>
</html>"""


def test_extracts_head_metadata_trimmed():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert snap.title == "Trail Running Shoes for Every Terrain"
    assert snap.description == "Lightweight trail shoes."
    assert snap.canonical == "https://example.com/shoes"
    assert snap.og_title == "Trail Shoes"
    assert snap.og_description == "Shoes for trails"
    assert snap.og_image == "https://example.com/og.png"
    assert snap.twitter_card == "summary"


def test_headings_keep_document_order():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert snap.headings == (
        Heading(1, "Trail Shoes"),
        Heading(2, "Why trail shoes"),
        Heading(3, "Grip"),
    )
    assert snap.h1s == ["Trail Shoes"]
    assert snap.h2s == ["Why trail shoes"]


def test_body_text_skips_scripts_styles_and_comments():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert "Grip matters on wet rock." in snap.body_text
    assert "do not count me" not in snap.body_text
    assert "color: red" not in snap.body_text
    assert "comment" not in snap.body_text
    assert snap.word_count == len(snap.body_text.split())


def test_images_and_missing_alt():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert [img.src for img in snap.images] == ["a.jpg", "b.jpg"]
    assert [img.src for img in snap.images_missing_alt] == ["b.jpg"]


def test_internal_links_follow_simple_classifier():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert len(snap.links) == 5
    assert snap.internal_links == ("/about", "#top")


def test_invalid_json_ld_block_is_dropped():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert snap.structured_data == ({"@type": "Product", "name": "Trail"},)


def test_empty_document_gives_empty_snapshot():
    snap = extract_snapshot("", "https://example.com/")
    assert snap == PageSnapshot(url="https://example.com/")
    assert snap.word_count == 0
    assert snap.h1s == []


def test_is_internal_href():
    assert is_internal_href("/a")
    assert is_internal_href("page.html")
    assert not is_internal_href("https://example.com/a")
    assert not is_internal_href("http://example.com/a")
    assert not is_internal_href("mailto:x@y.z")
    assert not is_internal_href("")
    assert not is_internal_href(None)


def test_snapshot_dict_roundtrip():
    snap = extract_snapshot(RICH_HTML, "https://example.com/shoes")
    assert PageSnapshot.from_dict(snap.to_dict()) == snap
