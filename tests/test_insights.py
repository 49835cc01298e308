from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from sqlite_mcp.insights import InsightsLog


def test_empty_log_renders_empty_string():
    assert InsightsLog().render_all() == ""


def test_render_preserves_order_with_blank_line_separator():
    log = InsightsLog()
    log.append("A")
    log.append("B")
    assert log.render_all() == "A\n\nB"


def test_append_accepts_any_text():
    log = InsightsLog()
    for text in ["", "multi\nline", "A"]:
        log.append(text)
    assert log.entries() == ("", "multi\nline", "A")
    assert log.render_all() == "\n\nmulti\nline\n\nA"


def test_render_is_recomputed_after_each_append():
    log = InsightsLog()
    log.append("first")
    assert log.render_all() == "first"
    log.append("second")
    assert log.render_all() == "first\n\nsecond"


def test_concurrent_appends_are_all_kept():
    log = InsightsLog()
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(log.append, [f"insight-{i}" for i in range(200)]))
    assert len(log) == 200
    assert sorted(log.entries()) == sorted(f"insight-{i}" for i in range(200))
