"""Markdown 图片引用的定位与改写。"""

from __future__ import annotations

from md_localizer.processing.document import MarkdownDocument

TEXT = """# Title

![cover](https://img.example.com/cover.png "Cover")
Inline ![a](http://img.example.com/a.gif) and local ![b](./assets/b.png).

<img alt="logo" src="https://img.example.com/logo.svg" width="20">

![spaced](<https://img.example.com/with space.png>)

```markdown
![ignored](https://img.example.com/in-fence.png)
```

Use `![code](https://img.example.com/in-code.png)` literally.
"""


def test_parse_finds_images_in_order() -> None:
    document = MarkdownDocument.parse(TEXT, "doc.md")

    urls = [ref.url for ref in document.references]
    assert urls == [
        "https://img.example.com/cover.png",
        "http://img.example.com/a.gif",
        "./assets/b.png",
        "https://img.example.com/logo.svg",
        "https://img.example.com/with space.png",
    ]
    assert document.references[3].kind == "html"
    assert all(ref.document_id == "doc.md" for ref in document.references)


def test_remote_references_skip_local_paths() -> None:
    document = MarkdownDocument.parse(TEXT, "doc.md")

    assert "./assets/b.png" not in [ref.url for ref in document.remote_references()]
    assert len(document.remote_references()) == 4


def test_serialize_without_resolution_round_trips() -> None:
    document = MarkdownDocument.parse(TEXT, "doc.md")

    assert document.serialize() == TEXT


def test_serialize_replaces_only_resolved_references() -> None:
    document = MarkdownDocument.parse(TEXT, "doc.md")
    cover, gif, _local, logo, _spaced = document.references
    cover.resolved_path = "./assets/abc.webp"
    logo.resolved_path = "./assets/def.svg"

    output = document.serialize()

    assert '![cover](./assets/abc.webp "Cover")' in output
    assert 'src="./assets/def.svg"' in output
    assert gif.url in output
    assert "https://img.example.com/in-fence.png" in output
    assert "https://img.example.com/in-code.png" in output


def test_destination_with_balanced_parentheses_is_captured_whole() -> None:
    url = "https://upload.example.org/wiki/File:Foo_(bar).png"
    document = MarkdownDocument.parse(f'![x]({url} "Foo")\n', "doc.md")

    assert [ref.url for ref in document.references] == [url]
    document.references[0].resolved_path = "./assets/foo.webp"
    assert document.serialize() == '![x](./assets/foo.webp "Foo")\n'


def test_images_in_indented_code_blocks_are_ignored() -> None:
    text = (
        "para\n\n"
        "    ![x](https://img.example.com/in-indent.png)\n"
        "\n"
        "    more code\n"
        "back to text ![y](https://img.example.com/outside.png)\n"
    )

    document = MarkdownDocument.parse(text, "doc.md")

    assert [ref.url for ref in document.remote_references()] == ["https://img.example.com/outside.png"]
    assert document.serialize() == text


def test_indented_list_continuation_is_not_code() -> None:
    text = "1. step\n\n    ![shot](https://img.example.com/step.png)\n"

    document = MarkdownDocument.parse(text, "doc.md")

    assert [ref.url for ref in document.remote_references()] == ["https://img.example.com/step.png"]
