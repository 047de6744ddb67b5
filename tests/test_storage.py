import io
import os

import pytest

from taddelivery import storage
from taddelivery.storage import (
    BYTES_PER_BLOCK,
    ProgressBar,
    copy_dir,
    copy_file,
    copy_file_part,
    delete_dir,
    dir_exists,
    dsi_cluster_size,
    dsi_free,
    dsi_real_free,
    dsi_size,
    file_exists,
    format_bytes,
    get_dir_size,
    get_file_size_path,
    menu_slots,
    menu_slots_free,
    pad_file,
    sd_card_free,
    sd_card_size,
    size_in_blocks,
)


def test_format_bytes_small_is_plain():
    assert format_bytes(500) == "500B"


def test_format_bytes_units():
    assert format_bytes(1536) == "1.50KB"
    assert format_bytes(3 * 1024 * 1024) == "3.00MB"
    assert format_bytes(5 * 1024 ** 3).endswith("GB")


@pytest.mark.parametrize("k", [1, 2, 7])
def test_size_in_blocks_steps_per_block(k):
    assert size_in_blocks(k * BYTES_PER_BLOCK) - size_in_blocks(0) == k
    assert size_in_blocks(k * BYTES_PER_BLOCK - 1) == size_in_blocks(0) + k - 1


def test_progress_bar_draws_full_and_skips_redundant():
    stream = io.StringIO()
    bar = ProgressBar(stream)
    bar.update(1.0)
    assert stream.getvalue().count("|") == ProgressBar.WIDTH
    before = stream.getvalue()
    bar.update(2.0)
    assert stream.getvalue() == before


def test_progress_bar_clear_resets():
    stream = io.StringIO()
    bar = ProgressBar(stream)
    bar.update(1.0)
    bar.clear()
    assert bar.last_bars == 0
    mark = len(stream.getvalue())
    bar.update(1.0)
    assert stream.getvalue()[mark:].count("|") == ProgressBar.WIDTH


def test_copy_file_round_trip(tmp_path):
    src = tmp_path / "a.bin"
    data = bytes(range(256)) * 700
    src.write_bytes(data)
    dst = tmp_path / "b.bin"
    assert copy_file(src, dst) == len(data)
    assert dst.read_bytes() == data


def test_copy_file_part_slice_and_truncation(tmp_path):
    src = tmp_path / "a.bin"
    data = bytes(range(200))
    src.write_bytes(data)
    dst = tmp_path / "part.bin"
    copy_file_part(src, 10, 50, dst)
    assert dst.read_bytes() == data[10:60]
    copy_file_part(src, 150, 500, dst)
    assert dst.read_bytes() == data[150:]


def test_copy_file_part_replaces_and_reports_progress(tmp_path):
    src = tmp_path / "a.bin"
    src.write_bytes(b"new contents")
    dst = tmp_path / "b.bin"
    dst.write_bytes(b"old and much longer contents")
    stream = io.StringIO()
    bar = ProgressBar(stream)
    copy_file(src, dst, bar)
    assert dst.read_bytes() == b"new contents"
    assert "|" in stream.getvalue()
    assert bar.last_bars == 0


def test_copy_missing_source_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        copy_file_part(tmp_path / "missing", 0, 10, tmp_path / "out")


def test_file_and_dir_exists(tmp_path):
    f = tmp_path / "f"
    f.write_bytes(b"x")
    assert file_exists(f) is True
    assert file_exists(tmp_path / "nope") is False
    assert dir_exists(tmp_path) is True
    assert dir_exists(f) is False


def test_file_size_path(tmp_path):
    f = tmp_path / "f"
    f.write_bytes(b"abcdef")
    assert get_file_size_path(f) == 6
    assert get_file_size_path(tmp_path / "nope") == 0


def test_pad_file_appends_zeros(tmp_path):
    f = tmp_path / "f"
    f.write_bytes(b"abc")
    pad_file(f, 5)
    assert f.read_bytes() == b"abc" + bytes(5)


def _make_tree(root):
    (root / "sub" / "deep").mkdir(parents=True)
    (root / "one.txt").write_bytes(b"1" * 10)
    (root / "sub" / "two.txt").write_bytes(b"2" * 20)
    (root / "sub" / "deep" / "three.txt").write_bytes(b"3" * 30)


def test_copy_dir_copies_tree(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    _make_tree(src)
    dst = tmp_path / "dst"
    dst.mkdir()
    out = io.StringIO()
    assert copy_dir(str(src), str(dst), out) is True
    assert (dst / "sub" / "deep" / "three.txt").read_bytes() == b"3" * 30
    assert (dst / "one.txt").read_bytes() == b"1" * 10
    assert out.getvalue().count("Done") == 3


def test_copy_dir_missing_source(tmp_path):
    assert copy_dir(str(tmp_path / "nope"), str(tmp_path)) is False


def test_delete_dir_removes_tree(tmp_path):
    target = tmp_path / "t"
    target.mkdir()
    _make_tree(target)
    out = io.StringIO()
    assert delete_dir(str(target), out) is True
    assert not target.exists()
    assert "Fail" not in out.getvalue()


def test_delete_dir_missing_fails(tmp_path):
    assert delete_dir(str(tmp_path / "nope")) is False


def test_delete_root_refused():
    with pytest.raises(ValueError):
        delete_dir("/")


def test_get_dir_size(tmp_path):
    _make_tree(tmp_path)
    assert get_dir_size(str(tmp_path), 1) == 10 + 20 + 30
    rounded = get_dir_size(str(tmp_path), 4096)
    assert rounded % 4096 == 0
    assert rounded >= 60
    assert get_dir_size(str(tmp_path / "nope"), 1) == 0


def test_menu_slots_free_counts_title_dirs(tmp_path):
    (tmp_path / "title" / "00030004" / "4b415254").mkdir(parents=True)
    (tmp_path / "title" / "00030004" / "4b415255").mkdir(parents=True)
    (tmp_path / "title" / "00030005" / "file.bin").parent.mkdir(parents=True)
    (tmp_path / "title" / "00030005" / "file.bin").write_bytes(b"x")
    (tmp_path / "title" / "00030017" / "484e4141").mkdir(parents=True)
    assert menu_slots_free(str(tmp_path)) == menu_slots() - 2
    assert menu_slots() == storage.TITLE_LIMIT


def test_sd_card_space(tmp_path):
    assert 0 < sd_card_free(str(tmp_path)) <= sd_card_size(str(tmp_path))
    assert sd_card_size(str(tmp_path / "missing")) == 0


def test_dsi_free_bounded(tmp_path):
    app = tmp_path / "title" / "00030004" / "4b415254" / "content"
    app.mkdir(parents=True)
    (app / "00000000.app").write_bytes(b"\0" * 5000)
    used = get_dir_size(str(tmp_path / "title" / "00030004"), dsi_cluster_size(str(tmp_path)))
    free = dsi_free(str(tmp_path))
    assert free <= dsi_size() - used
    assert free <= dsi_real_free(str(tmp_path))
    assert dsi_size() == 1024 * BYTES_PER_BLOCK