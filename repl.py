#!/usr/bin/env python3
"""
XCDM - Interactive REPL with Auto-completion

Edits one model package through hierarchical keyword commands. When the user
types "ADD " and presses Tab, the available sub-commands are listed.

Every edit goes through ModelDocument, so UNDO / REDO cover everything typed
here. Version commands are applied straight away and are not undoable.
"""
import logging
import re
import shlex
from typing import Any, List, Optional, Tuple

from prompt_toolkit import prompt
from prompt_toolkit.completion import NestedCompleter
from prompt_toolkit.history import FileHistory
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.styles import Style

from config import HISTORY_FILE
from core import ModelDocument, model_to_lines
from Schema.core_data_model import AttributeType, DeleteRule, Entity, Relationship, SchemaObject
from Schema.adapters import XCDataModelAdapter, PackageError

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A REPL command could not be carried out. The session goes on."""


# ============================================================================
# Command Hierarchy
# ============================================================================
# The nested dict drives keyword-level auto-completion. Names typed by the
# user (entities, members, versions) are free text and are not completed.
# ============================================================================

ATTRIBUTE_TYPES = {t.value.replace(" ", ""): None for t in AttributeType}

DELETE_RULES = {r.value.replace(" ", ""): None for r in DeleteRule}

FIELDS = {
    "name": None, "class_name": None, "parent_entity": None, "is_abstract": None,
    "attribute_type": ATTRIBUTE_TYPES, "default_value": None,
    "is_optional": None, "is_transient": None, "is_indexed": None,
    "destination_entity": None, "inverse_relationship": None, "delete_rule": DELETE_RULES,
    "is_to_many": None, "is_ordered": None, "min_count": None, "max_count": None,
    "predicate": None, "fetch_limit": None,
    "uniqueness_constraints": None, "compound_indexes": None,
}

COMMANDS = {
    "ADD": {
        "ENTITY": None,                                 # ADD ENTITY Person
        "ATTRIBUTE": {"TO": {"TYPE": ATTRIBUTE_TYPES}}, # ADD ATTRIBUTE age TO Person TYPE Integer32
        "RELATIONSHIP": {"FROM": {"TO": None}},         # ADD RELATIONSHIP friends FROM Person TO Person
        "FETCHED": {"TO": {"WHERE": None}},             # ADD FETCHED adults TO Person WHERE age >= 18
        "CONFIGURATION": None,                          # ADD CONFIGURATION Cloud
        "MEMBER": {"TO": None},                         # ADD MEMBER Person TO Cloud
    },
    "DELETE": {
        "ENTITY": None,                                 # DELETE ENTITY Person
        "ATTRIBUTE": None,                              # DELETE ATTRIBUTE Person.age
        "RELATIONSHIP": None,                           # DELETE RELATIONSHIP Person.friends
        "FETCHED": None,                                # DELETE FETCHED Person.adults
        "CONFIGURATION": None,                          # DELETE CONFIGURATION Cloud
        "MEMBER": {"FROM": None},                       # DELETE MEMBER Person FROM Cloud
    },
    "RENAME": {"ENTITY": {"TO": None}},                 # RENAME ENTITY Person TO Human
    "SET": dict(FIELDS, CONFIGURATION=None),            # SET Person.age is_optional NO
    "INFO": None,                                       # INFO Person.age key value
    "VERSION": {
        "LIST": None,
        "CREATE": {"FROM": None},
        "RENAME": {"TO": None},
        "DELETE": None,
        "SWITCH": None,
    },
    "UNDO": None,
    "REDO": None,
    "SAVE": None,
    "SHOW": {
        "SCHEMA": None,
        "VERSIONS": None,
        "HISTORY": None,
        "XML": None,
    },
    "HELP": None,
    "EXIT": None,
}

# ============================================================================
# Style Configuration
# ============================================================================

style = Style.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})

HELP_TEXT = """
XCDM Command Reference
======================

Structure:
  ADD ENTITY name
  ADD ATTRIBUTE name TO Entity [TYPE type]
  ADD RELATIONSHIP name FROM Entity TO Destination
  ADD FETCHED name TO Entity WHERE predicate
  ADD CONFIGURATION name
  ADD MEMBER Entity TO Configuration

  DELETE ENTITY|CONFIGURATION name
  DELETE ATTRIBUTE|RELATIONSHIP|FETCHED Entity.member
  DELETE MEMBER Entity FROM Configuration

Fields:
  RENAME ENTITY old TO new        (references to the old name are kept)
  SET Entity[.member] field value
  SET CONFIGURATION name field value
  INFO Entity[.member] key value  (set a userInfo entry)
  INFO Entity[.member] key        (remove a userInfo entry)

  Booleans take YES/NO, NONE clears an optional field (not a relationship destination).
  Groups take "a,b;c" for uniqueness_constraints and compound_indexes.

Versions (not undoable):
  VERSION LIST
  VERSION CREATE name [FROM source]
  VERSION RENAME old TO new
  VERSION DELETE name
  VERSION SWITCH name

Session:
  UNDO | REDO
  SAVE [path]
  SHOW SCHEMA|VERSIONS|HISTORY|XML
  HELP
  EXIT

Press TAB after any keyword to see available completions!
"""

# ============================================================================
# Value Parsing
# ============================================================================

_TRUE = {"yes", "true", "1", "on"}
_FALSE = {"no", "false", "0", "off"}
_NONE = {"none", "null", "-"}

_REQUIRED_FIELDS = ("name", "attribute_type", "delete_rule", "predicate")
_INT_FIELDS = ("min_count", "max_count", "fetch_limit")
_GROUP_FIELDS = ("uniqueness_constraints", "compound_indexes")


def _parse_value(field_name: str, raw: str, required: bool = False) -> Any:
    """Convert the text typed for a field into the value stored on the model.

    NONE is kept as text for fields that cannot be empty.
    """
    lowered = raw.lower()
    if field_name.startswith("is_"):
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise CommandError(f"{field_name} expects YES or NO, got '{raw}'")
    if lowered in _NONE and not required and field_name not in _REQUIRED_FIELDS:
        return [] if field_name in _GROUP_FIELDS else None
    if field_name in _INT_FIELDS:
        try:
            return int(raw)
        except ValueError:
            raise CommandError(f"{field_name} expects a number, got '{raw}'")
    if field_name in _GROUP_FIELDS:
        return [[n.strip() for n in group.split(",") if n.strip()]
                for group in raw.split(";") if group.strip()]
    return raw


def _split(command: str) -> List[str]:
    try:
        return shlex.split(command)
    except ValueError as e:
        raise CommandError(f"Cannot read command: {e}")


# ============================================================================
# Interpreter
# ============================================================================

class ReplSession:
    """Runs REPL commands against one ModelDocument."""

    def __init__(self, document: ModelDocument):
        self.document = document

    @property
    def model(self):
        return self.document.model

    def execute(self, command: str) -> str:
        cmd = command.strip()
        if not cmd:
            return ""
        tokens = _split(cmd)
        keyword = tokens[0].upper()
        handler = getattr(self, f"_handle_{keyword.lower()}", None)
        if handler is None:
            raise CommandError(f"Unknown command: {tokens[0]}")
        logger.debug("Executing: %s", cmd)
        return handler(tokens[1:], cmd)

    # ========== Lookup ==========

    def _entity(self, name: str) -> Entity:
        entity = self.model.get_entity(name)
        if entity is None:
            raise CommandError(f"Unknown entity '{name}'")
        return entity

    def _configuration(self, name: str):
        configuration = self.model.get_configuration(name)
        if configuration is None:
            raise CommandError(f"Unknown configuration '{name}'")
        return configuration

    def _member(self, path: str, getter: str = "get_member") -> Tuple[Entity, SchemaObject]:
        entity_name, sep, member_name = path.partition(".")
        if not sep or not member_name:
            raise CommandError(f"Expected Entity.member, got '{path}'")
        entity = self._entity(entity_name)
        member = getattr(entity, getter)(member_name)
        if member is None:
            raise CommandError(f"Unknown member '{path}'")
        return entity, member

    def _target(self, path: str) -> SchemaObject:
        if "." in path:
            return self._member(path)[1]
        return self._entity(path)

    @staticmethod
    def _expect(args: List[str], index: int, keyword: str) -> None:
        if len(args) <= index or args[index].upper() != keyword:
            raise CommandError(f"Expected {keyword}")

    @staticmethod
    def _arity(args: List[str], count: int, usage: str) -> None:
        if len(args) < count:
            raise CommandError(f"Usage: {usage}")

    # ========== Structure ==========

    def _handle_add(self, args: List[str], raw: str) -> str:
        self._arity(args, 2, "ADD ENTITY|ATTRIBUTE|RELATIONSHIP|FETCHED|CONFIGURATION|MEMBER ...")
        kind, name = args[0].upper(), args[1]
        doc = self.document

        if kind == "ENTITY":
            doc.add_entity(name)
            return f"  [+] Added entity {name}"

        if kind == "ATTRIBUTE":
            self._expect(args, 2, "TO")
            self._arity(args, 4, "ADD ATTRIBUTE name TO Entity [TYPE type]")
            entity = self._entity(args[3])
            attribute_type = AttributeType.STRING
            if len(args) > 4:
                self._expect(args, 4, "TYPE")
                try:
                    attribute_type = AttributeType.from_label(" ".join(args[5:]))
                except ValueError as e:
                    raise CommandError(str(e))
            doc.add_attribute(entity.meta_id, name, attribute_type)
            return f"  [+] Added attribute {entity.name}.{name}: {attribute_type.value}"

        if kind == "RELATIONSHIP":
            self._expect(args, 2, "FROM")
            self._expect(args, 4, "TO")
            self._arity(args, 6, "ADD RELATIONSHIP name FROM Entity TO Destination")
            entity = self._entity(args[3])
            doc.add_relationship(entity.meta_id, name, args[5])
            return f"  [+] Added relationship {entity.name}.{name} -> {args[5]}"

        if kind == "FETCHED":
            self._expect(args, 2, "TO")
            self._arity(args, 4, "ADD FETCHED name TO Entity WHERE predicate")
            entity = self._entity(args[3])
            parts = re.split(r"\s+WHERE\s+", raw, maxsplit=1, flags=re.IGNORECASE)
            predicate = parts[1].strip() if len(parts) == 2 else ""
            doc.add_fetched_property(entity.meta_id, name, predicate)
            return f"  [+] Added fetched property {entity.name}.{name}"

        if kind == "CONFIGURATION":
            doc.add_configuration(name)
            return f"  [+] Added configuration {name}"

        if kind == "MEMBER":
            self._expect(args, 2, "TO")
            self._arity(args, 4, "ADD MEMBER Entity TO Configuration")
            configuration = self._configuration(args[3])
            if not doc.add_configuration_entity(configuration.meta_id, name):
                raise CommandError(f"{name} is already in configuration {configuration.name}")
            return f"  [+] Added {name} to configuration {configuration.name}"

        raise CommandError(f"Cannot add '{args[0]}'")

    def _handle_delete(self, args: List[str], raw: str) -> str:
        self._arity(args, 2, "DELETE ENTITY|ATTRIBUTE|RELATIONSHIP|FETCHED|CONFIGURATION|MEMBER ...")
        kind, name = args[0].upper(), args[1]
        doc = self.document

        if kind == "ENTITY":
            doc.remove_entity(self._entity(name).meta_id)
            return f"  [-] Deleted entity {name}"

        if kind in ("ATTRIBUTE", "RELATIONSHIP", "FETCHED"):
            getter = {
                "ATTRIBUTE": "get_attribute",
                "RELATIONSHIP": "get_relationship",
                "FETCHED": "get_fetched_property",
            }[kind]
            entity, member = self._member(name, getter)
            remove = {
                "ATTRIBUTE": doc.remove_attribute,
                "RELATIONSHIP": doc.remove_relationship,
                "FETCHED": doc.remove_fetched_property,
            }[kind]
            remove(entity.meta_id, member.meta_id)
            return f"  [-] Deleted {kind.lower()} {name}"

        if kind == "CONFIGURATION":
            doc.remove_configuration(self._configuration(name).meta_id)
            return f"  [-] Deleted configuration {name}"

        if kind == "MEMBER":
            self._expect(args, 2, "FROM")
            self._arity(args, 4, "DELETE MEMBER Entity FROM Configuration")
            configuration = self._configuration(args[3])
            if not doc.remove_configuration_entity(configuration.meta_id, name):
                raise CommandError(f"{name} is not in configuration {configuration.name}")
            return f"  [-] Removed {name} from configuration {configuration.name}"

        raise CommandError(f"Cannot delete '{args[0]}'")

    # ========== Fields ==========

    def _set(self, target: SchemaObject, field_name: str, raw: str) -> None:
        required = isinstance(target, Relationship) and field_name == "destination_entity"
        value = _parse_value(field_name, raw, required)
        try:
            self.document.set_field(target.meta_id, field_name, value)
        except ValueError as e:
            raise CommandError(str(e))

    def _handle_rename(self, args: List[str], raw: str) -> str:
        if len(args) != 4 or args[0].upper() != "ENTITY" or args[2].upper() != "TO":
            raise CommandError("Usage: RENAME ENTITY old TO new")
        self._set(self._entity(args[1]), "name", args[3])
        return f"  [~] Renamed entity {args[1]} to {args[3]}"

    def _handle_set(self, args: List[str], raw: str) -> str:
        if args and args[0].upper() == "CONFIGURATION":
            self._arity(args, 4, "SET CONFIGURATION name field value")
            target, path, args = self._configuration(args[1]), args[1], args[2:]
        else:
            self._arity(args, 3, "SET Entity[.member] field value")
            target, path, args = self._target(args[0]), args[0], args[1:]
        field_name, raw_value = args[0], " ".join(args[1:])
        self._set(target, field_name, raw_value)
        return f"  [~] {path}.{field_name} = {raw_value}"

    def _handle_info(self, args: List[str], raw: str) -> str:
        self._arity(args, 2, "INFO Entity[.member] key [value]")
        target, key = self._target(args[0]), args[1]
        if len(args) == 2:
            if not self.document.remove_user_info(target.meta_id, key):
                raise CommandError(f"{args[0]} has no userInfo key '{key}'")
            return f"  [-] Removed userInfo {args[0]}[{key}]"
        value = " ".join(args[2:])
        self.document.set_user_info(target.meta_id, key, value)
        return f"  [~] userInfo {args[0]}[{key}] = {value}"

    # ========== Versions ==========

    def _handle_version(self, args: List[str], raw: str) -> str:
        self._arity(args, 1, "VERSION LIST|CREATE|RENAME|DELETE|SWITCH ...")
        action = args[0].upper()
        doc = self.document

        if action == "LIST":
            return self._versions()

        if action == "CREATE":
            self._arity(args, 2, "VERSION CREATE name [FROM source]")
            based_on = None
            if len(args) > 2:
                self._expect(args, 2, "FROM")
                self._arity(args, 4, "VERSION CREATE name FROM source")
                based_on = args[3]
                if based_on not in doc.versions:
                    raise CommandError(f"Unknown version '{based_on}'")
            if not doc.create_version(args[1], based_on):
                raise CommandError(f"Cannot create version '{args[1]}'")
            return f"  [V] Created version {args[1]} (now current)"

        if action == "RENAME":
            self._expect(args, 2, "TO")
            self._arity(args, 4, "VERSION RENAME old TO new")
            if not doc.rename_version(args[1], args[3]):
                raise CommandError(f"Cannot rename version '{args[1]}' to '{args[3]}'")
            return f"  [V] Renamed version {args[1]} to {args[3]}"

        if action == "DELETE":
            self._arity(args, 2, "VERSION DELETE name")
            if not doc.delete_version(args[1]):
                raise CommandError(f"Cannot delete version '{args[1]}'")
            return f"  [V] Deleted version {args[1]}, current is {doc.current_version_name}"

        if action == "SWITCH":
            self._arity(args, 2, "VERSION SWITCH name")
            if not doc.switch_to(args[1]):
                raise CommandError(f"Unknown version '{args[1]}'")
            return f"  [V] Current version is {args[1]}"

        raise CommandError(f"Unknown version action '{args[0]}'")

    def _versions(self) -> str:
        lines = []
        for name in self.document.version_names:
            marker = "*" if name == self.document.current_version_name else " "
            lines.append(f"  {marker} {name}")
        return "\n".join(lines)

    # ========== Session ==========

    def _handle_undo(self, args: List[str], raw: str) -> str:
        if not self.document.undo():
            raise CommandError("Nothing to undo")
        return "  [<] Undone"

    def _handle_redo(self, args: List[str], raw: str) -> str:
        if not self.document.redo():
            raise CommandError("Nothing to redo")
        return "  [>] Redone"

    def _handle_save(self, args: List[str], raw: str) -> str:
        path = args[0] if args else None
        try:
            self.document.save(path)
        except PackageError as e:
            raise CommandError(str(e))
        return f"  [S] Saved {self.document.package_path}"

    def _handle_show(self, args: List[str], raw: str) -> str:
        what = args[0].upper() if args else "SCHEMA"
        if what == "SCHEMA":
            return "\n".join(model_to_lines(self.model))
        if what == "VERSIONS":
            return self._versions()
        if what == "HISTORY":
            history = self.document.history
            if not history:
                return "  (no edits)"
            return "\n".join(f"  {n}. {d}" for n, d in enumerate(history, 1))
        if what == "XML":
            return XCDataModelAdapter.export(self.model).decode("utf-8")
        raise CommandError(f"Cannot show '{args[0]}'")

    def _handle_help(self, args: List[str], raw: str) -> str:
        return HELP_TEXT


def execute_command(document: ModelDocument, command: str) -> str:
    """Run one REPL command and return the text to print.

    Raises:
        CommandError: the command is malformed or could not be applied
    """
    return ReplSession(document).execute(command)


# ============================================================================
# REPL Implementation
# ============================================================================

def print_banner(document: ModelDocument):
    """Print welcome banner with usage tips"""
    source = document.package_path or "(unsaved package)"
    print(f"""
+===========================================================================+
|                    XCDM - Core Data Model Editor                          |
|                  Interactive REPL with Auto-completion                    |
+===========================================================================+
|  TIP: Type a command and press TAB to see available sub-commands          |
|                                                                           |
|  Examples:                                                                |
|    ADD <TAB>      -> ENTITY, ATTRIBUTE, RELATIONSHIP, FETCHED, MEMBER...  |
|    DELETE <TAB>   -> ENTITY, ATTRIBUTE, RELATIONSHIP, CONFIGURATION...    |
|    VERSION <TAB>  -> LIST, CREATE, RENAME, DELETE, SWITCH                 |
|                                                                           |
|  Type 'HELP' for command reference, 'EXIT' to quit                        |
+---------------------------------------------------------------------------+
  Package: {source}
  Version: {document.current_version_name}
""")


def main(document: Optional[ModelDocument] = None) -> int:
    """Main REPL loop over one document"""
    document = document or ModelDocument()
    session = ReplSession(document)
    print_banner(document)

    completer = NestedCompleter.from_nested_dict(COMMANDS)
    history = FileHistory(str(HISTORY_FILE))
    warned = False

    while True:
        try:
            user_input = prompt(
                f'XCDM [{document.current_version_name}]> ',
                completer=completer,
                complete_while_typing=False,
                history=history,
                auto_suggest=AutoSuggestFromHistory(),
                style=style,
            )
        except KeyboardInterrupt:
            print("\n  Use 'EXIT' to quit")
            continue
        except EOFError:
            print("\nGoodbye!")
            break

        if user_input.strip().upper() == "EXIT":
            if document.is_modified and not warned:
                print("  [!] Unsaved changes. SAVE first, or EXIT again to discard them")
                warned = True
                continue
            print("Goodbye!")
            break

        try:
            output = session.execute(user_input)
        except CommandError as e:
            print(f"  [?] {e}")
            print("  Type 'HELP' for commands or press TAB for suggestions")
            continue
        if output:
            print(output)

    return 0


if __name__ == "__main__":
    main()
