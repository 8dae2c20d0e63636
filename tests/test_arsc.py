import struct

import pytest

import builders
from arsc import decode_language_or_region, decode_resource_table, parse_res_id
from errors import InvalidIdentifier, InvalidIndex, MalformedHeader, NotFound, OutOfBounds, UnknownChunkType
from res_value import Raw


@pytest.fixture(scope="module")
def package(resources):
    return resources.packages["com.example.sample"]


def test_table(resources):
    assert resources.strings == builders.ARSC_STRINGS
    assert resources.package_count == 1
    assert list(resources.packages) == ["com.example.sample"]


def test_package(package):
    assert package.id == 0x7f
    assert package.type_strings == builders.ARSC_TYPES
    assert package.key_strings == builders.ARSC_KEYS
    assert sorted(package.specs) == [1, 2, 3, 4]
    assert len(package.types[3]) == 3
    assert package.specs[3][0].entry_count == 3


def test_type_and_key_names(package):
    assert package.type(3) == "string"
    assert package.type_id("drawable") == 2
    assert package.key(1) == "app_name"
    assert package.key_id("hello") == 2
    with pytest.raises(InvalidIndex):
        package.type(0)
    with pytest.raises(NotFound):
        package.type_id("layout")
    with pytest.raises(NotFound):
        package.key_id("nope")


def test_configs(package):
    default, ja, fr = package.types[3]
    assert default.config.locale is None
    assert (ja.config.locale_lang, ja.config.locale_country) == ("ja", "JP")
    assert ja.config.locale == "ja-rJP"
    assert fr.config.locale == "fr"
    assert fr.config.locale_country is None


def test_entries(package):
    default = package.types[3][0]
    assert default.entry_count == 3
    assert default.keys == {"app_name": 0, "hello": 1, "default_only": 2}
    assert package.types[3][1][1] is None
    assert default[10] is None
    attr = package.types[1][0][0]
    assert attr.is_complex and attr.value is None
    assert package.resolve(package.types[4][0][0]) == Raw(0xff3366cc, 0x1c000000)


@pytest.mark.parametrize("res_id, options, expected", [
    ("@string/app_name", {}, "Sample App"),
    ("string/app_name", {}, "Sample App"),
    ("@0x7f030000", {}, "Sample App"),
    ("@string/app_name", {"lang": "ja"}, "サンプル"),
    ("@string/app_name", {"country": "JP"}, "サンプル"),
    ("@string/app_name", {"lang": "de"}, "Sample App"),
    ("@string/hello", {"lang": "fr"}, "Hello"),
    ("@string/hello", {"lang": "ja"}, None),
    ("@string/default_only", {"lang": "ja"}, None),
    ("@string/default_only", {}, "Only default"),
])
def test_find_string(resources, res_id, options, expected):
    assert resources.find(res_id, **options) == expected


def test_find_missing_string(resources):
    with pytest.raises(NotFound):
        resources.find("@0x7f030010")
    with pytest.raises(NotFound):
        resources.find("@string/missing")
    with pytest.raises(KeyError):
        resources.find("@string/missing")


def test_find_drawable(resources):
    assert resources.find("@drawable/icon") == ["res/drawable-mdpi/icon.png", "res/drawable-hdpi/icon.png"]


def test_find_unsupported_types(resources):
    assert resources.find("@attr/orientation") is None
    assert resources.find("@color/accent") is None
    assert resources.find("@0x7f090000") is None


@pytest.mark.parametrize("res_id", ["", "app_name", "@0x7f03", "@0x7f0300001", "@string/app name", "@@string/x",
                                    "@string/app_name\n", "@0x7f030000\n"])
def test_invalid_identifier(resources, res_id):
    with pytest.raises(InvalidIdentifier):
        resources.find(res_id)
    with pytest.raises(ValueError):
        parse_res_id(res_id)


def test_res_ids(resources):
    assert resources.res_hex_id("@string/hello") == "@0x7f030001"
    assert resources.res_hex_id("drawable/icon") == "@0x7f020000"
    assert resources.res_readable_id("@0x7f030001") == "@string/hello"
    assert resources.res_readable_id(0x7f020000) == "@drawable/icon"
    assert resources.res_readable_id(resources.res_hex_id("@string/default_only")) == "@string/default_only"
    with pytest.raises(NotFound):
        resources.res_readable_id("@0x7f030005")
    with pytest.raises(NotFound):
        resources.res_hex_id("@layout/main")
    with pytest.raises(InvalidIdentifier):
        resources.res_hex_id("nope")


@pytest.mark.parametrize("code, base, expected", [
    (b"\x00\x00", "a", None),
    (b"ja", "a", "ja"),
    (b"JP", "0", "JP"),
    (b"\xad\x05", "a", "fil"),
])
def test_language_or_region(code, base, expected):
    assert decode_language_or_region(code, base) == expected


def test_packed_locale_in_config():
    chunks = [builders.type_chunk(1, [(0, builders.TYPE_STRING, 0)], config=builders.res_config(raw_lang=b"\xad\x05"))]
    table = decode_resource_table(builders.resource_table(
        ["Kumusta"], [builders.package_chunk(0x7f, "p", ["string"], ["hi"], chunks)]))
    assert table.find("@string/hi", lang="fil") == "Kumusta"


def test_unknown_top_level_chunk(arsc_bytes):
    with pytest.raises(UnknownChunkType) as ex:
        decode_resource_table(arsc_bytes + struct.pack("<HHI", 0x0180, 8, 8))
    assert ex.value.chunk_type == 0x0180
    assert "chunk type error" in str(ex.value)


def test_unknown_package_chunk():
    chunks = [builders.chunk(0x0203, b"\x00" * 8, b"")]
    data = builders.resource_table(["a"], [builders.package_chunk(0x7f, "p", ["string"], ["k"], chunks)])
    with pytest.raises(UnknownChunkType):
        decode_resource_table(data)


def test_truncated(arsc_bytes):
    with pytest.raises(OutOfBounds):
        decode_resource_table(arsc_bytes[:100])


def test_package_before_string_pool():
    package = builders.package_chunk(0x7f, "p", ["string"], ["k"], [])
    with pytest.raises(MalformedHeader):
        decode_resource_table(builders.chunk(0x0002, struct.pack("<I", 1), package))


def test_dangling_key_index():
    chunks = [builders.type_chunk(1, [(99, builders.TYPE_STRING, 0)])]
    data = builders.resource_table(["a"], [builders.package_chunk(0x7f, "p", ["string"], ["k"], chunks)])
    with pytest.raises(OutOfBounds):
        decode_resource_table(data)


def test_dangling_string_value():
    chunks = [builders.type_chunk(1, [(0, builders.TYPE_STRING, 42)])]
    data = builders.resource_table(["a"], [builders.package_chunk(0x7f, "p", ["string"], ["k"], chunks)])
    with pytest.raises(OutOfBounds):
        decode_resource_table(data)


def test_no_packages():
    table = decode_resource_table(builders.resource_table(["a"], []))
    assert table.strings == ["a"]
    with pytest.raises(NotFound):
        table.find("@string/a")


def test_readable_id_with_trailing_newline(resources):
    with pytest.raises(InvalidIdentifier):
        resources.res_hex_id("@string/hello\n")


def test_non_ascii_language():
    with pytest.raises(MalformedHeader):
        decode_language_or_region(b"a\x80", "a")

    chunks = [builders.type_chunk(1, [(0, builders.TYPE_STRING, 0)], config=builders.res_config(raw_lang=b"a\x80"))]
    with pytest.raises(MalformedHeader):
        decode_resource_table(builders.resource_table(
            ["x"], [builders.package_chunk(0x7f, "p", ["string"], ["hi"], chunks)]))


def test_entry_value_past_chunk_end():
    config = builders.res_config()
    entries_start = 8 + 12 + len(config) + 4
    header = struct.pack("<BBHII", 1, 0, 0, 1, entries_start) + config
    # entry header only, the value that should follow is missing
    body = struct.pack("<I", 0) + struct.pack("<HHI", 8, 0, 0)
    chunks = [builders.type_spec_chunk(1, 1), builders.chunk(0x0201, header, body)]
    with pytest.raises(OutOfBounds):
        decode_resource_table(builders.resource_table(
            ["x"], [builders.package_chunk(0x7f, "p", ["string"], ["hi"], chunks)]))
