import asyncio

from pantrii.ingest.hashing import content_hash, hash_path, read_file


def test_content_hash_is_stable_sha256():
    data = b"%PDF-1.4 tomato soup"
    first = content_hash(data)
    assert first == content_hash(bytes(data))
    assert len(first) == 64
    assert first != content_hash(data + b" ")


def test_hash_path_matches_in_memory_hash(tmp_path):
    path = tmp_path / "card.jpg"
    data = b"\xff\xd8\xff" + b"x" * (3 * 1024 * 1024)
    path.write_bytes(data)

    assert hash_path(path) == content_hash(data)
    assert asyncio.run(read_file(path)) == data
