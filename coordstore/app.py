"""
Flask server exposing the coordination store: leases, keys and watches.
"""

from flask import Flask, request, jsonify
import atexit

from .errors import LeaseNotFound, RevisionCompacted
from .store import CoordinationStore

app = Flask(__name__)
store = None

# Upper bound on how long a single watch request may block
MAX_WATCH_TIMEOUT = 30.0


def init_store(reap_interval=0.5, history_size=10000):
    """Initialize the coordination store."""
    global store
    store = CoordinationStore(reap_interval=reap_interval, history_size=history_size)
    return store


def get_store():
    """Get or create store instance."""
    global store
    if store is None:
        store = CoordinationStore()
    return store


# Ensure graceful shutdown
@atexit.register
def shutdown():
    if store:
        store.shutdown()


@app.errorhandler(LeaseNotFound)
def lease_not_found(e):
    return jsonify({"success": False, "error": str(e), "lease": e.lease_id}), 404


@app.errorhandler(RevisionCompacted)
def revision_compacted(e):
    return jsonify({"success": False, "error": str(e), "compact_revision": e.compact_revision}), 410


@app.errorhandler(ValueError)
def bad_value(e):
    return jsonify({"success": False, "error": str(e)}), 400


def _body(*required):
    data = request.get_json(silent=True)
    if not data or any(name not in data for name in required):
        return None
    return data


def _missing(*required):
    return jsonify({"success": False, "error": "Missing " + " or ".join(required)}), 400


# ============== Lease Endpoints ==============

@app.route('/lease/grant', methods=['POST'])
def lease_grant():
    """Grant a lease with the given TTL in seconds."""
    data = _body('ttl')
    if data is None:
        return _missing('ttl')

    result = get_store().grant(float(data['ttl']))
    return jsonify(dict(result, success=True))


@app.route('/lease/keepalive', methods=['POST'])
def lease_keepalive():
    """Refresh a lease."""
    data = _body('id')
    if data is None:
        return _missing('id')

    result = get_store().keepalive(int(data['id']))
    return jsonify(dict(result, success=True))


@app.route('/lease/revoke', methods=['POST'])
def lease_revoke():
    """Revoke a lease, deleting its keys."""
    data = _body('id')
    if data is None:
        return _missing('id')

    result = get_store().revoke(int(data['id']))
    return jsonify(dict(result, success=True))


@app.route('/lease/ttl', methods=['POST'])
def lease_ttl():
    """Remaining time and attached keys of a lease."""
    data = _body('id')
    if data is None:
        return _missing('id')

    result = get_store().time_to_live(int(data['id']))
    return jsonify(dict(result, success=True))


# ============== KV Endpoints ==============

@app.route('/kv/put', methods=['POST'])
def kv_put():
    """Set a key, optionally bound to a lease."""
    data = _body('key', 'value')
    if data is None:
        return _missing('key', 'value')

    result = get_store().put(str(data['key']), str(data['value']), lease=int(data.get('lease', 0)))
    return jsonify(dict(result, success=True))


@app.route('/kv/get', methods=['POST'])
def kv_get():
    """Get a key."""
    data = _body('key')
    if data is None:
        return _missing('key')

    result = get_store().get(str(data['key']))
    return jsonify(dict(result, success=result['kv'] is not None))


@app.route('/kv/range', methods=['POST'])
def kv_range():
    """All keys under a prefix."""
    data = _body('prefix')
    if data is None:
        return _missing('prefix')

    result = get_store().range(str(data['prefix']))
    return jsonify(dict(result, success=True))


@app.route('/kv/delete', methods=['POST'])
def kv_delete():
    """Delete a key."""
    data = _body('key')
    if data is None:
        return _missing('key')

    result = get_store().delete(str(data['key']))
    return jsonify(dict(result, success=True))


# ============== Watch Endpoint ==============

@app.route('/watch', methods=['POST'])
def watch():
    """Long-poll for events under a prefix from a start revision."""
    data = _body('prefix', 'start_revision')
    if data is None:
        return _missing('prefix', 'start_revision')

    timeout = min(float(data.get('timeout', 0)), MAX_WATCH_TIMEOUT)
    result = get_store().watch_events(str(data['prefix']), int(data['start_revision']), timeout)
    return jsonify(dict(result, success=True))


@app.route('/stats', methods=['GET'])
def stats():
    """Get store statistics."""
    return jsonify(get_store().get_stats())


@app.route('/health', methods=['GET'])
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})


def create_app(reap_interval=0.5, history_size=10000):
    """Factory function to create app with custom store settings."""
    init_store(reap_interval=reap_interval, history_size=history_size)
    return app


if __name__ == '__main__':
    init_store()
    app.run(host='0.0.0.0', port=5000, threaded=True)
