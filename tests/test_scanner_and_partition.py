"""文档扫描的自然排序与分区切换逻辑。"""

from __future__ import annotations

from pathlib import Path

import pytest

from md_localizer.core.config import JobConfig, OutputConfig, PartitionConfig, default_output_dir
from md_localizer.core.exceptions import InvalidConfigurationError
from md_localizer.core.partition import PartitionAllocator, folder_size
from md_localizer.core.scanner import collect_documents, natural_sort_key


def make_config(source: Path) -> JobConfig:
    return JobConfig(source=source, output=OutputConfig(output_dir=default_output_dir(source)))


def test_natural_sort_key_orders_numbers_by_value() -> None:
    names = ["1.md", "10.md", "2.md"]

    assert sorted(names, key=natural_sort_key) == ["1.md", "2.md", "10.md"]


def test_collect_documents_uses_natural_order_and_filters(tmp_path: Path) -> None:
    source = tmp_path / "notes"
    (source / "chapter").mkdir(parents=True)
    for name in ("10.md", "1.md", "2.md"):
        (source / name).write_text("# doc", encoding="utf-8")
    (source / "chapter" / "intro.MD").write_text("# intro", encoding="utf-8")
    (source / "image.png").write_bytes(b"png")
    (source / "readme.txt").write_text("hello", encoding="utf-8")

    documents = collect_documents(make_config(source))

    assert [doc.document_id for doc in documents] == ["1.md", "2.md", "10.md", "chapter/intro.MD"]
    assert all(doc.root == source.resolve() for doc in documents)


def test_collect_documents_respects_exclude_patterns(tmp_path: Path) -> None:
    source = tmp_path / "notes"
    source.mkdir()
    (source / "keep.md").write_text("a", encoding="utf-8")
    (source / "draft-1.md").write_text("b", encoding="utf-8")

    config = make_config(source)
    config.exclude_patterns = ("draft-*",)

    assert [doc.document_id for doc in collect_documents(config)] == ["keep.md"]


def test_single_file_source(tmp_path: Path) -> None:
    document = tmp_path / "post.md"
    document.write_text("# post", encoding="utf-8")

    documents = collect_documents(make_config(document))

    assert len(documents) == 1
    assert documents[0].relative_path == Path("post.md")
    assert default_output_dir(document) == tmp_path / "post_localized"


def test_single_file_must_be_markdown(tmp_path: Path) -> None:
    document = tmp_path / "post.txt"
    document.write_text("hello", encoding="utf-8")

    with pytest.raises(InvalidConfigurationError):
        collect_documents(make_config(document))


def test_missing_source_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigurationError):
        collect_documents(make_config(tmp_path / "missing"))


def test_folder_size_counts_nested_files(tmp_path: Path) -> None:
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / "one.bin").write_bytes(b"x" * 10)
    (tmp_path / "a" / "b" / "two.bin").write_bytes(b"x" * 32)

    assert folder_size(tmp_path) == 42
    assert folder_size(tmp_path / "missing") == 0


def test_partition_rolls_over_only_between_documents(tmp_path: Path) -> None:
    allocator = PartitionAllocator(tmp_path, PartitionConfig(threshold=100))
    assert allocator.current_path() == tmp_path / "part_1"

    # 第一个文档：60 字节，未达到阈值
    first = allocator.current_path()
    first.mkdir()
    (first / "first.md").write_bytes(b"x" * 60)
    assert allocator.on_document_complete() is False
    assert allocator.last_measured_size == 60

    # 第二个文档把分区推过阈值，但它仍留在 part_1
    second = allocator.current_path()
    assert second == first
    (second / "second.md").write_bytes(b"x" * 50)
    assert allocator.on_document_complete() is True

    # 只有下一个文档进入 part_2
    assert allocator.index == 2
    assert allocator.current_path() == tmp_path / "part_2"
    assert folder_size(first) == 110
    assert allocator.partitions == [tmp_path / "part_1", tmp_path / "part_2"]


def test_partition_size_is_rescanned_from_disk(tmp_path: Path) -> None:
    allocator = PartitionAllocator(tmp_path, PartitionConfig(threshold=100))
    current = allocator.current_path()
    current.mkdir()
    (current / "doc.md").write_bytes(b"x" * 10)
    allocator.on_document_complete()

    # 外部写入同样计入
    (current / "external.bin").write_bytes(b"x" * 95)
    assert allocator.on_document_complete() is True


def test_disabled_partitioning_writes_to_root(tmp_path: Path) -> None:
    allocator = PartitionAllocator(tmp_path, PartitionConfig(enabled=False, threshold=1))
    (tmp_path / "doc.md").write_bytes(b"x" * 10)

    assert allocator.on_document_complete() is False
    assert allocator.current_path() == tmp_path
    assert allocator.index == 1
