"""XCDM CLI - Command Line Interface for Core Data model packages (.xcdatamodeld)"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).parent))

from config import LOG_FORMAT, LOG_LEVEL
from core import ModelDocument
from Schema.core_data_model import Entity, Model
from Schema.adapters import XCDataModelAdapter, XCDataModelDAdapter, PackageError

logger = logging.getLogger(__name__)

# ANSI Colors
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
RED = "\033[91m"
BOLD = "\033[1m"
RESET = "\033[0m"


def get_entity_lines(entity: Entity) -> List[str]:
    """Format entity as lines: header, then attributes, relationships and fetched properties."""
    header = f"  {BOLD}{entity.name}{RESET}"
    if entity.parent_entity:
        header += f" : {entity.parent_entity}"
    if entity.is_abstract:
        header += f" {YELLOW}[abstract]{RESET}"
    lines = [header]

    for attr in entity.attributes:
        marker = "?" if attr.is_optional else ""
        line = f"    {attr.name}: {attr.attribute_type.value}{marker}"
        if attr.default_value is not None:
            line += f" = {attr.default_value}"
        if attr.is_indexed:
            line += " [indexed]"
        lines.append(line)

    for rel in entity.relationships:
        arrow = "->>" if rel.is_to_many else "->"
        line = f"{CYAN}    {rel.name} {arrow} {rel.destination_entity}{RESET}"
        if rel.inverse_relationship:
            line += f" (inverse {rel.inverse_relationship})"
        lines.append(f"{line} [{rel.delete_rule.value}]")

    for fp in entity.fetched_properties:
        lines.append(f"{GREEN}    {fp.name} ~ {fp.predicate}{RESET}")

    return lines


def print_model(model: Model):
    """Print one version as a schema tree."""
    title = f" {model.name}"
    if model.schema_version_label:
        title += f" ({model.schema_version_label})"
    print(f"\n{BOLD}{'=' * 60}")
    print(title)
    print(f"{'=' * 60}{RESET}")
    if not model.entities:
        print("  (no entities)")
    for entity in model.entities:
        for line in get_entity_lines(entity):
            print(line)
    for configuration in model.configurations:
        print(f"  {YELLOW}[{configuration.name}]{RESET} {', '.join(configuration.entity_names)}")
    print()


# ========== Helpers ==========

def _error(message: str) -> int:
    print(f"{RED}[ERROR] {message}{RESET}", file=sys.stderr)
    return 1


def _open(path: str) -> Optional[ModelDocument]:
    try:
        return ModelDocument.open(path)
    except PackageError as e:
        _error(str(e))
        return None


def _version(document: ModelDocument, name: Optional[str]) -> Optional[Model]:
    if name is None:
        return document.model
    model = document.versions.get(name)
    if model is None:
        _error(f"Unknown version '{name}'")
    return model


def _save(document: ModelDocument) -> int:
    try:
        document.save()
    except PackageError as e:
        return _error(str(e))
    return 0


# ========== Commands ==========

def cmd_new(args) -> int:
    path = Path(args.path)
    if path.exists():
        return _error(f"{path} already exists")
    document = ModelDocument(args.version or XCDataModelDAdapter.package_name(path))
    try:
        document.save(path)
    except PackageError as e:
        return _error(str(e))
    print(f"{GREEN}[OK] Created {path} with version {document.current_version_name}{RESET}")
    return 0


def cmd_info(args) -> int:
    document = _open(args.path)
    if document is None:
        return 1
    print(f"\n  {CYAN}Package:{RESET} {XCDataModelDAdapter.package_name(args.path)}")
    print(f"  {CYAN}Versions:{RESET}")
    for name in document.version_names:
        model = document.versions[name]
        marker = f"{GREEN}*{RESET}" if name == document.current_version_name else " "
        print(f"    {marker} {name} ({len(model.entities)} entities, {len(model.configurations)} configurations)")
    if document.load_errors:
        print(f"  {YELLOW}Skipped versions:{RESET}")
        for name, reason in sorted(document.load_errors.items()):
            print(f"    - {name}: {reason}")
        return 1
    return 0


def cmd_show(args) -> int:
    document = _open(args.path)
    if document is None:
        return 1
    model = _version(document, args.version)
    if model is None:
        return 1
    if args.json:
        print(json.dumps(model.to_dict(with_ids=False), indent=2))
    else:
        print_model(model)
    return 0


def cmd_export(args) -> int:
    document = _open(args.path)
    if document is None:
        return 1
    model = _version(document, args.version)
    if model is None:
        return 1
    sys.stdout.write(XCDataModelAdapter.export(model).decode("utf-8"))
    return 0


def cmd_check(args) -> int:
    document = _open(args.path)
    if document is None:
        return 1
    names = [args.version] if args.version else document.version_names
    found = 0
    for name in names:
        model = _version(document, name)
        if model is None:
            return 1
        problems = model.dangling_references()
        found += len(problems)
        status = f"{GREEN}[OK]{RESET}" if not problems else f"{YELLOW}[WARN]{RESET}"
        print(f"  {status} {name}")
        for problem in problems:
            print(f"    - {problem}")
    return 1 if found else 0


def cmd_version(args) -> int:
    document = _open(args.path)
    if document is None:
        return 1

    if args.action == "list":
        for name in document.version_names:
            marker = "*" if name == document.current_version_name else " "
            print(f"{marker} {name}")
        return 0

    if args.action == "create":
        ok = document.create_version(args.name, args.based_on)
        message = f"Created version {args.name}"
    elif args.action == "rename":
        ok = document.rename_version(args.old, args.new)
        message = f"Renamed version {args.old} to {args.new}"
    elif args.action == "delete":
        ok = document.delete_version(args.name)
        message = f"Deleted version {args.name}"
    else:
        ok = document.switch_to(args.name)
        message = f"Current version is {args.name}"

    if not ok:
        return _error(f"Version {args.action} failed")
    if _save(document):
        return 1
    print(f"{GREEN}[OK] {message}{RESET}")
    return 0


def cmd_edit(args) -> int:
    import repl

    path = Path(args.path)
    if path.exists():
        document = _open(args.path)
        if document is None:
            return 1
    else:
        document = ModelDocument(XCDataModelDAdapter.package_name(path))
        document.package_path = path
    return repl.main(document)


# ========== Entry Point ==========

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="xcdm", description="Core Data model package editor")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More log output (-v info, -vv debug)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # new command
    new_parser = subparsers.add_parser("new", help="Create an empty package")
    new_parser.add_argument("path", help="Package directory (.xcdatamodeld)")
    new_parser.add_argument("--version", help="Name of the first version (default: package name)")
    new_parser.set_defaults(func=cmd_new)

    # info command
    info_parser = subparsers.add_parser("info", help="List versions and load errors")
    info_parser.add_argument("path")
    info_parser.set_defaults(func=cmd_info)

    # show command
    show_parser = subparsers.add_parser("show", help="Print a version as a tree or JSON")
    show_parser.add_argument("path")
    show_parser.add_argument("--version", help="Version to show (default: current)")
    show_parser.add_argument("--json", action="store_true", help="Print JSON instead of a tree")
    show_parser.set_defaults(func=cmd_show)

    # export command
    export_parser = subparsers.add_parser("export", help="Print the contents XML of a version")
    export_parser.add_argument("path")
    export_parser.add_argument("--version", help="Version to export (default: current)")
    export_parser.set_defaults(func=cmd_export)

    # check command
    check_parser = subparsers.add_parser("check", help="List name references that resolve to nothing")
    check_parser.add_argument("path")
    check_parser.add_argument("--version", help="Version to check (default: all)")
    check_parser.set_defaults(func=cmd_check)

    # version command
    version_parser = subparsers.add_parser("version", help="Manage versions, then save the package")
    version_parser.add_argument("path")
    actions = version_parser.add_subparsers(dest="action", required=True)
    actions.add_parser("list", help="List versions, current marked with *")
    create_parser = actions.add_parser("create", help="Copy a version under a new name and make it current")
    create_parser.add_argument("name")
    create_parser.add_argument("--from", dest="based_on", help="Version to copy (default: current)")
    rename_parser = actions.add_parser("rename", help="Rename a version")
    rename_parser.add_argument("old")
    rename_parser.add_argument("new")
    delete_parser = actions.add_parser("delete", help="Delete a version")
    delete_parser.add_argument("name")
    switch_parser = actions.add_parser("switch", help="Make a version current")
    switch_parser.add_argument("name")
    version_parser.set_defaults(func=cmd_version)

    # edit command
    edit_parser = subparsers.add_parser("edit", help="Open the interactive editor")
    edit_parser.add_argument("path")
    edit_parser.set_defaults(func=cmd_edit)

    return parser


def _configure_logging(verbose: int):
    level = LOG_LEVEL
    if verbose == 1:
        level = "INFO"
    elif verbose > 1:
        level = "DEBUG"
    logging.basicConfig(level=level, format=LOG_FORMAT)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    logger.debug("Running %s", args.command)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
