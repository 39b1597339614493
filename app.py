"""
Flask Web Application for the OT Clinical Note Builder

Thin JSON interface over WizardEngine. Every mutation goes through
POST /api/action; the remaining routes are read-only or export the ledger.

Configuration (environment, NOTE_BUILDER_ prefix):
    NOTE_BUILDER_CATALOG_PATH   catalog JSON (default data/catalog.json)
    NOTE_BUILDER_STORAGE_DIR    session snapshot directory
    NOTE_BUILDER_EXPORT_DIR     exported note files
"""

from flask import Flask, request, jsonify, send_file
import logging
import os

from backend.core.catalog import CatalogError, DEFAULT_CATALOG_PATH, load_catalog
from backend.core.wizard_engine import WizardEngine
from backend.persistence import DEFAULT_STORAGE_DIR, SessionPersistence
from backend.results import RejectedAction
from backend.utils.display_helpers import describe_step
from backend.utils.helpers import format_time, generate_note_filename
from backend.utils.intervention_kinds import InterventionKind

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_EXPORT_DIR = "outputs/notes"

# Initialize Flask app
app = Flask(__name__)
app.config.update(
    CATALOG_PATH=DEFAULT_CATALOG_PATH,
    STORAGE_DIR=DEFAULT_STORAGE_DIR,
    EXPORT_DIR=DEFAULT_EXPORT_DIR,
)
app.config.from_prefixed_env("NOTE_BUILDER")

# Engine is created once at startup
engine = None


def initialize_engine(catalog_path=None, storage_dir=None):
    """
    Load the catalog and create the engine (called once at startup).

    Raises:
        CatalogError: If the catalog is missing or malformed
    """
    global engine

    catalog_path = catalog_path or app.config['CATALOG_PATH']
    storage_dir = storage_dir or app.config['STORAGE_DIR']

    catalog = load_catalog(catalog_path)
    engine = WizardEngine(catalog, persistence=SessionPersistence(storage_dir))
    if engine.restore():
        logger.info("Previous session restored")
    return engine


def _render(update):
    """StateUpdate -> JSON body with step view"""
    body = update.to_json()
    body['timer'] = format_time(update.session_time)
    body['view'] = describe_step(update.state, engine.catalog) if update.state else None
    return body


def _engine_unavailable():
    return jsonify({
        'success': False,
        'error': 'Clinical data not loaded'
    }), 503


@app.route('/')
def index():
    """Service description"""
    return jsonify({
        'name': 'OT Clinical Documentation Builder',
        'kinds': [
            {'code': kind.value, 'label': kind.label, 'note_key': kind.ledger_key}
            for kind in InterventionKind
        ],
    })


@app.route('/api/state', methods=['GET'])
def get_state():
    """Current selection state, ledger and step view"""
    if engine is None:
        return _engine_unavailable()
    return jsonify(_render(engine.current_update()))


@app.route('/api/action', methods=['POST'])
def apply_action():
    """Dispatch one wizard action: {"action": ..., "payload": {...}}"""
    if engine is None:
        return _engine_unavailable()

    data = request.get_json(silent=True) or {}
    action = data.get('action')
    payload = data.get('payload') or {}

    if not isinstance(action, str) or not action:
        return jsonify({
            'success': False,
            'error': 'Missing action'
        }), 400

    result = engine.dispatch(action, payload)
    if isinstance(result, RejectedAction):
        status = 500 if result.unexpected else 409
        return jsonify(result.to_json()), status

    return jsonify(_render(result))


@app.route('/api/notes', methods=['GET'])
def get_notes():
    """Ledger entries as plain text"""
    if engine is None:
        return _engine_unavailable()
    return jsonify(engine.export_notes())


@app.route('/api/export/<kind>', methods=['POST'])
def export_note(kind):
    """Save one ledger entry to a text file (kind: billing code or note key)"""
    if engine is None:
        return _engine_unavailable()

    try:
        if kind in {k.value for k in InterventionKind}:
            note_kind = InterventionKind(kind)
        else:
            note_kind = InterventionKind.from_ledger_key(kind)
    except ValueError:
        return jsonify({
            'success': False,
            'error': f'Unknown note: {kind}'
        }), 404

    filename = generate_note_filename(prefix=note_kind.ledger_key, extension="txt")
    try:
        path = engine.ledger.save_to_file(note_kind, os.path.join(app.config['EXPORT_DIR'], filename))
    except OSError as e:
        logger.error(f"Error exporting note: {e}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500

    return jsonify({
        'success': True,
        'filename': filename,
        'path': path
    })


@app.route('/api/download/<filename>')
def download_file(filename):
    """Download an exported note"""
    if os.path.basename(filename) != filename:
        return jsonify({
            'success': False,
            'error': 'File not found'
        }), 404

    file_path = os.path.abspath(os.path.join(app.config['EXPORT_DIR'], filename))
    if not os.path.exists(file_path):
        return jsonify({
            'success': False,
            'error': 'File not found'
        }), 404

    return send_file(
        file_path,
        as_attachment=True,
        download_name=filename
    )


if __name__ == '__main__':
    try:
        initialize_engine()
    except CatalogError as e:
        logger.error(f"Cannot start: {e}")
        raise SystemExit(1)

    os.makedirs(app.config['EXPORT_DIR'], exist_ok=True)

    print("\n" + "="*60)
    print("OT CLINICAL DOCUMENTATION BUILDER - WEB INTERFACE")
    print("="*60)
    print("\nServer starting...")
    print("Open your browser and go to: http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    try:
        app.run(debug=False, host='0.0.0.0', port=5000)
    finally:
        engine.shutdown()
