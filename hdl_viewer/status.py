"""Small HTTP status endpoint for a running viewer."""
import time
from threading import Lock, Thread

from flask import Flask, jsonify
from flask_cors import CORS


class ViewerStats:
    def __init__(self, point_format="XYZ"):
        self.lock = Lock()
        self.format = point_format
        self.running = False
        self.received = 0
        self.drawn = 0
        self.dropped = 0
        self.points = 0
        self.last_update = 0

    def on_received(self):
        with self.lock:
            self.received += 1

    def on_drawn(self, n_points, dropped):
        with self.lock:
            self.drawn += 1
            self.points = n_points
            self.dropped = dropped
            self.last_update = time.time()

    def set_running(self, running):
        with self.lock:
            self.running = running

    def snapshot(self):
        with self.lock:
            return {
                'running': self.running,
                'format': self.format,
                'received': self.received,
                'drawn': self.drawn,
                'dropped': self.dropped,
                'points': self.points,
                'last_update': self.last_update,
            }


def create_app(stats):
    app = Flask(__name__)
    CORS(app)

    @app.route('/api/status')
    def get_status():
        """Get viewer status"""
        return jsonify(stats.snapshot())

    return app


def serve(stats, host='0.0.0.0', port=8080):
    """Run the status app on a daemon thread."""
    app = create_app(stats)
    thread = Thread(
        target=app.run,
        kwargs={'host': host, 'port': port, 'debug': False, 'use_reloader': False},
        daemon=True,
    )
    thread.start()
    print(f"✅ Status server on http://{host}:{port}/api/status")
    return thread
