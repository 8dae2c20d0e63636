import io
import json
import sys

import pytest

import builders
import main
import utils


@pytest.fixture
def output(monkeypatch):
    buf = io.StringIO()
    monkeypatch.setattr(utils._handler, "stream", buf)
    yield buf
    utils.set_json(False)
    utils.set_verbose(False)


def run(monkeypatch, tmp_path, data: bytes, *args: str) -> int:
    path = tmp_path / "input.bin"
    path.write_bytes(data)
    monkeypatch.setattr(sys, "argv", ["main.py", *args, str(path)])
    return main.main()


def test_dump_dex(monkeypatch, tmp_path, output, dex_bytes):
    assert run(monkeypatch, tmp_path, dex_bytes) == 0
    lines = output.getvalue().splitlines()
    assert lines[0] == "public class Lexample/app/sample/SampleCode; extends Ljava/lang/Object;"
    assert "    private static final Ljava/lang/String; TAG" in lines
    assert "    public void run();" in lines


def test_find_class(monkeypatch, tmp_path, output, dex_bytes):
    assert run(monkeypatch, tmp_path, dex_bytes, "--find", "Lexample/app/sample/Marker;") == 0
    assert output.getvalue().splitlines() == ["public interface abstract class Lexample/app/sample/Marker;"]


def test_dump_manifest(monkeypatch, tmp_path, output, manifest_bytes):
    assert run(monkeypatch, tmp_path, manifest_bytes) == 0
    assert output.getvalue().startswith("<manifest ")


def test_find_resource(monkeypatch, tmp_path, output, arsc_bytes):
    assert run(monkeypatch, tmp_path, arsc_bytes, "--find", "@string/app_name", "--lang", "ja") == 0
    assert output.getvalue() == "サンプル\n"


def test_json_output(monkeypatch, tmp_path, output, arsc_bytes):
    assert run(monkeypatch, tmp_path, arsc_bytes, "-j") == 0
    records = [json.loads(line) for line in output.getvalue().splitlines()]
    assert [r["message"] for r in records] == builders.ARSC_STRINGS
    assert records[0] == {"message": "Sample App", "type": "string", "ref": "0"}


def test_lookup_failure(monkeypatch, tmp_path, output, arsc_bytes):
    assert run(monkeypatch, tmp_path, arsc_bytes, "--find", "@string/missing") == 1
    assert output.getvalue().startswith("ERROR")


def test_decode_failure(monkeypatch, tmp_path, output, dex_bytes):
    assert run(monkeypatch, tmp_path, dex_bytes[:0x90]) == 1
    assert "Failed to decode" in output.getvalue()


def test_unknown_format(monkeypatch, tmp_path, output):
    assert run(monkeypatch, tmp_path, b"PK\x03\x04") == 1
    assert "Unrecognized file format" in output.getvalue()
