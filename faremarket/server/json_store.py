"""JSON document store served over HTTP for FareMarket."""

import json
import logging
import os
import threading

import click
from flask import Flask, jsonify, request
from flask_cors import CORS

from faremarket.config import settings, COLLECTIONS

logger = logging.getLogger(__name__)


def empty_db():
    """Return an empty database with every collection present."""
    return {name: [] for name in COLLECTIONS}


def ensure_db_file(db_file):
    """Create the database file with empty collections if it does not exist."""
    directory = os.path.dirname(db_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if not os.path.exists(db_file):
        with open(db_file, 'w') as f:
            json.dump(empty_db(), f, indent=2)


def create_app(db_file=None):
    """
    Build the store application.

    Every read-modify-write runs under one lock, which makes the
    conditional PATCH (`if_<field>=value`) an atomic compare-and-set.
    """
    db_file = db_file or settings.DB_FILE
    ensure_db_file(db_file)

    app = Flask(__name__)
    CORS(app)
    lock = threading.Lock()

    def read_db():
        """Read the database from the JSON file."""
        with open(db_file, 'r') as f:
            return json.load(f)

    def write_db(data):
        """Write data to the JSON file."""
        with open(db_file, 'w') as f:
            json.dump(data, f, indent=2)

    def find_index(items, item_id):
        for i, item in enumerate(items):
            if str(item.get('id')) == str(item_id):
                return i
        return None

    def missing_collection(collection):
        return jsonify({"error": f"Collection '{collection}' not found"}), 404

    @app.route('/')
    def get_root():
        """Get the entire database."""
        with lock:
            return jsonify(read_db())

    @app.route('/<collection>/query', methods=['GET'])
    def query_collection(collection):
        """Query items by field equality; a repeated key matches any of its values."""
        with lock:
            db = read_db()
        if collection not in db:
            return missing_collection(collection)

        filters = {key: request.args.getlist(key) for key in request.args.keys()}
        filtered_items = []
        for item in db[collection]:
            if all(key in item and str(item[key]) in values for key, values in filters.items()):
                filtered_items.append(item)
        return jsonify(filtered_items)

    @app.route('/<collection>', methods=['GET', 'POST'])
    def manage_collection(collection):
        """Get all items or add a new item to a collection."""
        with lock:
            db = read_db()
            if collection not in db:
                return missing_collection(collection)

            if request.method == 'GET':
                return jsonify(db[collection])

            new_item = request.get_json(silent=True)
            if not isinstance(new_item, dict) or not new_item.get('id'):
                return jsonify({"error": "Item must be an object with an 'id'"}), 400
            existing_index = find_index(db[collection], new_item['id'])
            if existing_index is not None:
                return jsonify({
                    "error": f"Item with ID '{new_item['id']}' already exists",
                    "current": db[collection][existing_index],
                }), 409
            db[collection].append(new_item)
            write_db(db)
            return jsonify(new_item), 201

    @app.route('/<collection>/<item_id>', methods=['GET', 'PUT', 'PATCH', 'DELETE'])
    def manage_item(collection, item_id):
        """Get, replace, merge-update or delete a specific item."""
        with lock:
            db = read_db()
            if collection not in db:
                return missing_collection(collection)

            item_index = find_index(db[collection], item_id)
            if item_index is None:
                return jsonify({"error": f"Item with ID '{item_id}' not found in '{collection}'"}), 404
            current = db[collection][item_index]

            if request.method == 'GET':
                return jsonify(current)

            if request.method == 'DELETE':
                deleted_item = db[collection].pop(item_index)
                write_db(db)
                return jsonify(deleted_item)

            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return jsonify({"error": "Body must be a JSON object"}), 400

            if request.method == 'PUT':
                payload['id'] = current['id']
                db[collection][item_index] = payload
                write_db(db)
                return jsonify(payload)

            for key in request.args.keys():
                if not key.startswith('if_'):
                    continue
                field = key[len('if_'):]
                expected = request.args.getlist(key)
                if current.get(field) not in expected:
                    logger.info(
                        "Conditional update rejected for %s/%s: %s %s not in %s",
                        collection, item_id, field, current.get(field), expected)
                    return jsonify({
                        "error": f"{field} is '{current.get(field)}', expected one of {expected}",
                        "current": current,
                    }), 409

            updated = dict(current)
            updated.update(payload)
            updated['id'] = current['id']
            db[collection][item_index] = updated
            write_db(db)
            return jsonify(updated)

    return app


@click.command()
@click.option('--port', default=3000, help='Port to listen on')
@click.option('--db-file', default=None, help='Database file (defaults to FAREMARKET_DB_FILE)')
def main(port, db_file):
    """Serve the store in the foreground."""
    logging.basicConfig(level=settings.LOG_LEVEL)
    create_app(db_file).run(host='0.0.0.0', port=port, threaded=True)


if __name__ == '__main__':
    main()
