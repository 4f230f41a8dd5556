from pathlib import Path

import pytest

from inkwell.documents import Document
from inkwell.errors import DocumentNotFoundError, TemplateExecError, TemplateSyntaxError
from inkwell.templates import TemplateEngine, group_docs, run_command, sort_docs
from inkwell.vars import Delims, Vars


def render(engine, body, data=None, delims=Delims()):
    template = engine.compile(body, delims, "t.html", Path("t.html"))
    return engine.execute(template, data if data is not None else {}, Path("t.html"))


def make_doc(engine, name, body, **doc_vars):
    path = Path("/site") / name
    doc = Document(source_path=path, raw_body=body, vars=Vars(doc_vars), mtime=None)
    doc.name = name
    doc.template = engine.compile(body, Delims(), name, path)
    return doc


def test_renders_variables_and_missing_as_empty():
    engine = TemplateEngine()
    assert render(engine, "Hi {{ title }}!", {"title": "Home"}) == "Hi Home!"
    assert render(engine, "[{{ nothing }}]") == "[]"
    assert render(engine, "<b>{{ html }}</b>", {"html": "<i>x</i>"}) == "<b><i>x</i></b>"


def test_non_mapping_data_is_wrapped():
    engine = TemplateEngine()
    assert render(engine, "{{ data[1] }}", ["a", "b"]) == "b"


def test_custom_delimiters_leave_default_syntax_alone():
    engine = TemplateEngine()
    delims = Delims("[[", "]]")
    body = "[[ title ]] {{ raw }} [[% if title %]]yes[[% endif %]][[# note #]]"
    assert render(engine, body, {"title": "T"}, delims) == "T {{ raw }} yes"
    assert engine.environment(delims) is engine.environment(Delims("[[", "]]"))


def test_syntax_and_execution_errors_carry_source():
    engine = TemplateEngine()
    with pytest.raises(TemplateSyntaxError) as excinfo:
        engine.compile("line one\n{{ title", Delims(), "bad.html", Path("bad.html"))
    assert excinfo.value.source_path == Path("bad.html")
    assert "line 2" in excinfo.value.message

    with pytest.raises(TemplateExecError):
        render(engine, "{{ parseJSON('not json') }}")


def test_data_functions():
    engine = TemplateEngine()
    assert render(engine, "{{ toJSON(toMap('a', 1, 'b', toSlice(1, 2))) }}") == '{"a": 1, "b": [1, 2]}'
    assert render(engine, "{{ parseYAML('k: v').k }}") == "v"
    assert render(engine, "{{ toYAML(toMap('k', 'v')) }}") == "k: v\n"
    assert render(engine, "{{ parseJSON('[1, 2]')[1] }}") == "2"
    assert render(engine, "{{ parseTime('2024-01-02').year }}") == "2024"
    assert render(engine, "{{ parseTime('02/01/2024', '%d/%m/%Y').month }}") == "1"
    assert "<em>x</em>" in render(engine, "{{ md2html('*x*') }}")


def test_do_cmd_exports_document_vars():
    engine = TemplateEngine()
    out = render(engine, "{{ doCmd('sh', '-c', 'printf %s \"$INK_TITLE\"') }}", {"title": "Home"})
    assert out == "Home"


def test_run_command_failures_never_raise():
    out = run_command({}, "definitely-not-a-command-xyz")
    assert out.startswith("CMD ERROR on `definitely-not-a-command-xyz`")

    out = run_command({}, "sh", "-c", "echo oops >&2; echo partial; exit 3")
    assert out.startswith("CMD ERROR on `sh -c ")
    assert "exit status 3" in out
    assert "oops" in out
    assert out.index("oops") < out.index("partial")


def test_run_command_odd_arguments_render_inline():
    out = run_command({}, 42)
    assert out.startswith("CMD ERROR on `42`")

    out = run_command({}, "echo", "a\x00b")
    assert out.startswith("CMD ERROR on `echo a")

    engine = TemplateEngine()
    assert render(engine, "{{ doCmd(42) }}").startswith("CMD ERROR on `42`")


def test_run_command_builtin_keys_win():
    out = run_command(
        {"URI_PATH": "built-in", "uri_path": "front-matter"},
        "sh",
        "-c",
        'printf %s "$INK_URI_PATH"',
    )
    assert out == "built-in"


def test_render_named_uses_registry():
    engine = TemplateEngine()
    doc = make_doc(engine, "a.html", "<b>{{ title }}</b>", title="A")
    doc.effective_vars = Vars(title="A", DOC_KEY="a.html")
    engine.begin_pass({"a.html": doc})

    assert render(engine, "{{ renderNamed('a.html') }}") == "<b>A</b>"
    assert render(engine, "{{ renderNamed('a.html', toMap('title', 'Z')) }}") == "<b>Z</b>"
    assert render(engine, "{{ renderNamed(DOC_KEY) }}", {"DOC_KEY": "a.html"}) == "<b>A</b>"
    with pytest.raises(DocumentNotFoundError):
        render(engine, "{{ renderNamed('missing.html') }}")


def test_render_named_miss_in_layout_names_rendered_document():
    engine = TemplateEngine()
    page = make_doc(engine, "page.html", "p")
    engine.begin_pass({"page.html": page})
    layout = engine.compile(
        "{{ renderNamed('gone.html') }}", Delims(), "layout.html", Path("/conf/layout.html")
    )
    with pytest.raises(DocumentNotFoundError) as excinfo:
        engine.execute(layout, {"DOC_KEY": "page.html"}, Path("/conf/layout.html"))
    assert excinfo.value.source_path == Path("/site/page.html")


def test_render_named_post_processes_markdown():
    engine = TemplateEngine()
    doc = make_doc(engine, "post.md", "# {{ title }}", title="Post")
    engine.begin_pass({"post.md": doc})
    assert '<h1 id="post">Post</h1>' in render(engine, "{{ renderNamed('post.md') }}")


def test_docs_all_lists_layoutable_documents_sorted():
    engine = TemplateEngine()
    docs = {
        "b.html": make_doc(engine, "b.html", "", title="Beta", URI_PATH="b.html"),
        "a.md": make_doc(engine, "a.md", "", title="Alpha", URI_PATH="a.html"),
        "s.css": make_doc(engine, "s.css", "", title="Style", URI_PATH="s.css"),
    }
    engine.begin_pass(docs)
    assert render(engine, "{% for d in docsAll() %}{{ d.title }},{% endfor %}") == "Alpha,Beta,"
    with pytest.raises(TypeError):
        engine.documents["new"] = None


def test_sort_and_group_docs():
    docs = [
        {"title": "b", "tags": "x, y"},
        {"title": "a", "date": "2020", "tags": ["y"]},
        {"title": "c"},
    ]
    assert [d["title"] for d in sort_docs(docs, True, "title")] == ["a", "b", "c"]
    assert [d["title"] for d in sort_docs(docs, False, "date", "title")] == ["c", "b", "a"]
    assert sort_docs(docs, True) == docs

    groups = group_docs(docs, "tags")
    assert list(groups) == ["x", "y"]
    assert [d["title"] for d in groups["y"]] == ["b", "a"]
