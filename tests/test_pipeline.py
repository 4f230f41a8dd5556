import pytest

from inkwell.errors import PostProcessError
from inkwell.pipeline import css_preprocess, markdown_to_html, post_process


def test_markdown_headings_get_unique_ids():
    html = markdown_to_html("# Hi Home\n\n## Intro\n\n## Intro\n")
    assert '<h1 id="hi-home">Hi Home</h1>' in html
    assert '<h2 id="intro">Intro</h2>' in html
    assert '<h2 id="intro-1">Intro</h2>' in html


def test_markdown_typography_and_raw_html():
    html = markdown_to_html('Wait... a -- b --- c\n\n<div class="x">raw</div>\n')
    assert "Wait…" in html
    assert "a – b — c" in html
    assert '<div class="x">raw</div>' in html


def test_markdown_tables_and_strikethrough():
    html = markdown_to_html("| a | b |\n|---|---|\n| 1 | 2 |\n\n~~gone~~\n")
    assert "<table>" in html
    assert "<td>1</td>" in html
    assert "<del>gone</del>" in html


def test_markdown_code_highlighting():
    html = markdown_to_html("```python\nprint(1)\n```\n")
    assert 'class="highlight"' in html
    plain = markdown_to_html("```\na < b\n```\n")
    assert "<pre><code>a &lt; b" in plain


def test_scss_and_indented_sass():
    css = css_preprocess("$c: red;\na { b { color: $c; } }\n")
    assert "a b" in css
    assert "color: red" in css
    css = css_preprocess("a\n  color: blue\n", indented=True)
    assert "color: blue" in css


def test_post_process_dispatches_by_extension():
    assert post_process(".html", "<p>{{x}}</p>") == "<p>{{x}}</p>"
    assert post_process(".css", "a{}") == "a{}"
    assert "<h1" in post_process(".md", "# T")
    assert "<h1" in post_process(".MKD", "# T")
    assert "color: red" in post_process(".scss", "a { color: red; }")


def test_post_process_wraps_compiler_failures(tmp_path):
    source = tmp_path / "style.scss"
    with pytest.raises(PostProcessError) as excinfo:
        post_process(".scss", "a { color: $undefined; }", source)
    assert excinfo.value.source_path == source
    assert ".scss conversion failed" in excinfo.value.message
