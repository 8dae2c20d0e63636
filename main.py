#!/usr/bin/env python
import argparse
import logging
import sys
from typing import Optional

from arsc import ResourceTable, decode_resource_table
from axml import decode_axml
from dex import Dex, decode_dex
from dex_info import ClassInfo
from errors import DecodeError, ResourceLookupError
from helpers import DEX_MAGIC, is_arsc, is_axml, is_cert, is_elf
from utils import LOG_TYPE_RESULT, get_logger, set_json, set_verbose

log = get_logger("main")


def emit(text: str, kind: str, ref: Optional[str] = None) -> None:
    log.info(text, extra={"type": LOG_TYPE_RESULT, "kind": kind, "ref": ref})


def dump_class(cls: ClassInfo) -> None:
    emit(cls.definition, "class", cls.name)
    for field in cls.fields:
        emit("    " + field.definition, "field", cls.name)
    for method in cls.methods:
        emit("    " + method.definition, "method", cls.name)


def dump_dex(dex: Dex, find: Optional[str]) -> int:
    if find:
        cls = dex.find_class(find)
        if cls is None:
            log.error(f"Class {find} not found")
            return 1
        dump_class(cls)
        return 0

    for cls in dex.classes:
        dump_class(cls)
    return 0


def dump_resources(table: ResourceTable, find: Optional[str], lang: Optional[str], country: Optional[str]) -> int:
    if find:
        try:
            value = table.find(find, lang=lang, country=country)
        except ResourceLookupError as ex:
            log.error(f"Lookup of {find} failed: {ex}")
            return 1
        if isinstance(value, list):
            for item in value:
                emit(item, "resource", find)
        else:
            emit("" if value is None else value, "resource", find)
        return 0

    for name, package in table.packages.items():
        log.debug(f"Package {name}: {len(package.types)} types")
    for index, string in enumerate(table.strings):
        emit(string, "string", "%d" % index)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Dump Android DEX, binary XML and resources.arsc files")
    parser.add_argument(
        "-v", "--verbose", help="Enable verbose logging", action="store_true"
    )
    parser.add_argument(
        "-j", "--json", help="Output results as JSON objects, one per line", action="store_true"
    )
    parser.add_argument(
        "--find", help="Resource id to look up ('@string/app_name', '@0x7f040001'), or a class descriptor "
                       "('Lcom/example/Main;') for DEX files",
        metavar="ID"
    )
    parser.add_argument(
        "--lang", help="Language code for string lookups. Example: --lang ja"
    )
    parser.add_argument(
        "--country", help="Country code for string lookups. Example: --country JP"
    )

    parser.add_argument("FILE", nargs='?')
    args = parser.parse_args()
    if not args.FILE:
        parser.print_help()
        return 0

    set_verbose(args.verbose)
    set_json(args.json)
    log.setLevel(logging.DEBUG if args.verbose else logging.INFO)

    with open(args.FILE, "rb") as f:
        data = f.read()

    try:
        if is_axml(data):
            emit(decode_axml(data).to_xml(), "xml", args.FILE)
            return 0
        if is_arsc(data):
            return dump_resources(decode_resource_table(data), args.find, args.lang, args.country)
        if data.startswith(DEX_MAGIC[:4]):  # any dex version
            return dump_dex(decode_dex(data), args.find)
    except DecodeError as ex:
        log.error(f"Failed to decode {args.FILE}: {ex}")
        return 1

    if is_elf(data) or is_cert(data):
        log.error(f"{args.FILE} is a native library or certificate, not a dumpable file")
    else:
        log.error(f"Unrecognized file format: {args.FILE}")
    return 1


if __name__ == '__main__':
    sys.exit(main())
