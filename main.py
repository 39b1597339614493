"""
Console Test Harness for WizardEngine

Simple console loop to drive dispatch() without the Flask layer.

Input lines:
    open-builder {"kind": "97535"}
    select-category {"category_id": "adl"}
    go-back
    notes | state | quit
"""

import argparse
import json
import logging
import sys

from backend.core.catalog import CatalogError, DEFAULT_CATALOG_PATH, load_catalog
from backend.core.wizard_engine import WizardEngine
from backend.persistence import DEFAULT_STORAGE_DIR, SessionPersistence
from backend.results import RejectedAction
from backend.utils.display_helpers import describe_step
from backend.utils.helpers import format_time

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def parse_command_line(line):
    """
    Split a console line into (action_name, payload).

    Args:
        line: 'action-name' optionally followed by a JSON object

    Returns:
        tuple: (action_name, payload dict)

    Raises:
        ValueError: If the payload is not a JSON object
    """
    line = line.strip()
    if not line:
        raise ValueError("Empty command")

    action, _, rest = line.partition(' ')
    rest = rest.strip()
    if not rest:
        return action, {}

    try:
        payload = json.loads(rest)
    except json.JSONDecodeError as e:
        raise ValueError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object")
    return action, payload


def print_view(update, catalog):
    """Print narrative, step view and available options"""
    print(f"\n[Timer {format_time(update.session_time)}]  undo={'yes' if update.can_undo else 'no'}"
          f"{'  (rephrasing...)' if update.rephrase_pending else ''}")

    if update.notice:
        print(f"Notice: {update.notice}")

    if update.state is None:
        print("No builder session open. Use: open-builder {\"kind\": \"97535\"} or {\"kind\": \"97530\"}")
        return

    print_separator("-")
    print(f"Narrative: {update.state.current_narrative or '(empty)'}")
    print_separator("-")

    view = describe_step(update.state, catalog)
    print(f"{view['header']} ({view['progress']}%) - {view['title']}")
    if view['hint']:
        print(view['hint'])

    dialog = view['dialog']
    options = dialog['options'] if dialog else view['options']
    if dialog:
        print(f"Dialog: {dialog['title']}")

    for option in options:
        marks = ('*' if option['selected'] else ' ') + ('x' if option['disabled'] else ' ')
        print(f"  [{marks}] {option['action']} {json.dumps(option['payload'])}")

    controls = dialog['controls'] if dialog else view['controls']
    if controls:
        print(f"Controls: {', '.join(controls)}")


def print_notes(engine):
    notes = engine.export_notes()
    print_separator()
    for key, text in notes.items():
        print(f"{key}: {text or '(empty)'}")
    print_separator()


def main(argv=None):
    """Run console harness"""
    arg_parser = argparse.ArgumentParser(description="OT clinical note builder (console)")
    arg_parser.add_argument("--catalog", default=DEFAULT_CATALOG_PATH, help="Catalog JSON path")
    arg_parser.add_argument("--storage-dir", default=DEFAULT_STORAGE_DIR, help="Session snapshot directory")
    args = arg_parser.parse_args(argv)

    print_separator()
    print("OT CLINICAL NOTE BUILDER - CONSOLE")
    print_separator()

    try:
        catalog = load_catalog(args.catalog)
    except CatalogError as e:
        print(f"\nFailed to initialize: {e}")
        return 1

    engine = WizardEngine(catalog, persistence=SessionPersistence(args.storage_dir))
    if engine.restore():
        print("Previous session restored.")

    print("Type 'notes', 'state', or 'quit'\n")
    print_view(engine.current_update(), catalog)

    try:
        while True:
            try:
                line = input("\n> ").strip()
            except EOFError:
                break

            if not line:
                continue
            if line.lower() in EXIT_COMMANDS:
                break
            if line == 'notes':
                print_notes(engine)
                continue
            if line == 'state':
                print(json.dumps(engine.snapshot(), indent=2))
                continue

            try:
                action, payload = parse_command_line(line)
            except ValueError as e:
                print(f"Invalid input: {e}")
                continue

            result = engine.dispatch(action, payload)
            if isinstance(result, RejectedAction):
                print(f"Rejected: {result.reason}")
                continue

            if result.rephrase_pending:
                engine.wait_for_rephrase(timeout=5)
                result = engine.current_update(result.notice)
            print_view(result, catalog)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user (Ctrl+C)")

    finally:
        engine.shutdown()

    print_separator()
    print("Console session complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
