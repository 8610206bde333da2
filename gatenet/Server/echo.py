"""Catch-all origin server that reports back what it received."""

import logging

from flask import Flask, jsonify, request
from werkzeug.serving import make_server

logger = logging.getLogger(__name__)

METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'HEAD', 'OPTIONS']


def create_app():
    app = Flask(__name__)

    @app.route('/', defaults={'path': ''}, methods=METHODS)
    @app.route('/<path:path>', methods=METHODS)
    def catch_all(path):
        logger.info(f"Received {request.method} /{path}")
        # Headers in wire order, original case as werkzeug reports it
        headers = [[key, value] for key, value in request.headers.items()]
        return jsonify({
            "method": request.method,
            "path": f"/{path}",
            "query": request.query_string.decode("latin-1"),
            "args": request.args.to_dict(flat=False),
            "headers": headers,
            "body": request.get_data(as_text=True),
        })

    return app


def make_echo_server(host="127.0.0.1", port=0):
    """Build a threaded WSGI server for the echo app; call serve_forever() on it."""
    return make_server(host, port, create_app(), threaded=True)


def run(host="0.0.0.0", port=8081):
    server = make_echo_server(host, port)
    logger.info(f"Echo server listening on {host}:{server.server_port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
