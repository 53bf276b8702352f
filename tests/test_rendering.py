"""Dispatcher + per-block HTML."""
import time

from donation_pages.models.blocks import Block, synthesize_default
from donation_pages.models.campaign import Campaign, MediaItem
from donation_pages.rendering import render
from donation_pages.rendering.blocks import money


def _campaign(**kw):
    data = {
        "id": "c1",
        "title": "Roof Repair Fund",
        "goal": 1000,
        "total_raised": 250,
        "donations_count": 12,
    }
    data.update(kw)
    return Campaign.from_api(data)


def _noop():
    pass


def test_default_layout_renders_every_block():
    c = _campaign()
    nodes = render(synthesize_default(c), c, _noop)
    assert [n.block_id for n in nodes] == ["hero-1", "info-1", "donate-1", "footer-1"]
    assert not any(n.placeholder for n in nodes)
    assert "<h1>Roof Repair Fund</h1>" in nodes[0].html
    assert "$250</strong> of $1,000 goal" in nodes[1].html
    assert "width: 25.00%" in nodes[1].html
    assert "12 donations" in nodes[1].html
    assert "Powered by Helping Hands" in nodes[3].html


def test_unknown_type_is_a_placeholder_in_place():
    c = _campaign()
    blocks = [Block("a", "text", {"content": "hi"}), Block("b", "carousel"), Block("c", "footer")]
    nodes = render(blocks, c, _noop)
    assert [n.block_id for n in nodes] == ["a", "b", "c"]
    assert nodes[1].placeholder
    assert 'data-block-type="carousel"' in nodes[1].html
    assert "[Unknown block: carousel]" in nodes[1].html


def test_donate_button_activation_calls_back():
    clicks = []
    c = _campaign()
    nodes = render([Block("d", "donate_button", {"label": "Give now"})], c, lambda: clicks.append(1))
    assert "Give now" in nodes[0].html
    assert 'data-action="donate"' in nodes[0].html
    nodes[0].activate()
    assert clicks == [1]


def test_text_is_escaped_and_keeps_line_breaks():
    c = _campaign()
    html = render([Block("t", "text", {"content": "<b>hi</b>\nthere"})], c, _noop)[0].html
    assert "&lt;b&gt;hi&lt;/b&gt;<br />there" in html


def test_campaign_info_hides_optional_parts():
    c = _campaign(goal=0, donations_count=None, latest_winner={"donor": "Sam", "amount_cents": 500})
    html = render(
        [Block("i", "campaign_info", {"show_progress_bar": True, "show_winner": False})], c, _noop
    )[0].html
    assert "donate-block-progress" not in html
    assert "donation" not in html.replace("donate-block", "")
    assert "Sam" not in html

    html = render([Block("i", "campaign_info", {"show_winner": True})], c, _noop)[0].html
    assert "Congratulations to <strong>Sam</strong>" in html


def test_gallery_shows_media():
    c = _campaign()
    media = [MediaItem("m1", "https://cdn.test/1.jpg", "image"), MediaItem("m2", None, "image")]
    nodes = render(
        [Block("g", "media_gallery", {"columns": 3})], c, _noop, media_loader=lambda cid: media
    )
    assert 'src="https://cdn.test/1.jpg"' in nodes[0].html
    assert nodes[0].html.count("<img") == 1
    assert "--media-cols: 3" in nodes[0].html


def test_gallery_media_failure_degrades_to_empty_state():
    def broken(cid):
        raise RuntimeError("media service down")

    c = _campaign()
    blocks = [Block("g", "media_gallery"), Block("t", "text", {"content": "still here"})]
    nodes = render(blocks, c, _noop, media_loader=broken)
    assert "No media yet." in nodes[0].html
    assert not nodes[0].placeholder
    assert "still here" in nodes[1].html


def test_slow_media_times_out_to_empty_state():
    def slow(cid):
        time.sleep(1)
        return [MediaItem("m1", "https://cdn.test/1.jpg")]

    c = _campaign()
    nodes = render([Block("g", "media_gallery")], c, _noop, media_loader=slow, media_timeout=0.05)
    assert "No media yet." in nodes[0].html


def test_slow_media_is_waited_for_once_per_page():
    def slow(cid):
        time.sleep(1)
        return [MediaItem("m1", "https://cdn.test/1.jpg")]

    c = _campaign()
    blocks = [Block(f"g{i}", "media_gallery") for i in range(3)]
    started = time.monotonic()
    nodes = render(blocks, c, _noop, media_loader=slow, media_timeout=0.2)
    elapsed = time.monotonic() - started

    assert elapsed < 0.6
    assert all("No media yet." in n.html for n in nodes)


def test_galleries_share_one_media_fetch():
    calls = []

    def loader(cid):
        calls.append(cid)
        return [MediaItem("m1", "https://cdn.test/1.jpg")]

    c = _campaign()
    nodes = render([Block("g1", "media_gallery"), Block("g2", "media_gallery")], c, _noop, media_loader=loader)
    assert calls == ["c1"]
    assert all("https://cdn.test/1.jpg" in n.html for n in nodes)


def test_media_not_fetched_without_gallery():
    calls = []
    c = _campaign()
    render([Block("h", "hero")], c, _noop, media_loader=lambda cid: calls.append(cid) or [])
    assert calls == []


def test_embed_urls():
    c = _campaign()
    yt = render([Block("e", "embed", {"url": "https://youtu.be/dQw4w9WgXcQ"})], c, _noop)[0].html
    assert 'src="https://www.youtube.com/embed/dQw4w9WgXcQ"' in yt
    assert 'height="400"' in yt
    vimeo = render([Block("e", "embed", {"url": "https://vimeo.com/12345"})], c, _noop)[0].html
    assert "https://player.vimeo.com/video/12345" in vimeo
    bad = render([Block("e", "embed", {"url": "javascript:alert(1)"})], c, _noop)[0].html
    assert "No embed URL configured." in bad
    assert "<iframe" not in bad


def test_footer_joins_text_and_credit():
    c = _campaign()
    html = render([Block("f", "footer", {"text": "Org Inc", "show_org_name": True})], c, _noop)[0].html
    assert "Org Inc · Powered by Helping Hands" in html
    html = render([Block("f", "footer", {"text": "Org Inc"})], c, _noop)[0].html
    assert "Powered by" not in html


def test_progress_tube():
    c = _campaign()
    html = render(
        [Block("p", "progress_tube", {"label": "Almost there", "show_percent": True})], c, _noop
    )[0].html
    assert "Almost there" in html
    assert "(25%)" in html


def test_money():
    assert money(1000) == "1,000"
    assert money(12.5) == "12.50"
