import asyncio
import atexit
import logging
import threading

from flask import Flask, request, jsonify

from hadescore.chatbot.base_core import SessionManager
from hadescore.config import get_settings

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

TURN_TIMEOUT_SECONDS = 120


class BackgroundLoop:
    """Event loop on a daemon thread; Flask handlers submit coroutines to it."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, name="hades-loop", daemon=True)
        self.thread.start()

    def run(self, coro, timeout=TURN_TIMEOUT_SECONDS):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)


_runtime = {}
_runtime_lock = threading.Lock()


def get_runtime():
    """Build the session manager and its loop on first use."""
    with _runtime_lock:
        if not _runtime:
            settings = get_settings()
            loop = BackgroundLoop()
            # created on the loop thread so its locks and tasks belong to that loop
            sessions = loop.run(_create_sessions(settings))
            _runtime.update(loop=loop, sessions=sessions, settings=settings)
            atexit.register(shutdown_runtime)
    return _runtime


async def _create_sessions(settings):
    return SessionManager(settings)


def shutdown_runtime():
    if not _runtime:
        return
    try:
        _runtime['loop'].run(_runtime['sessions'].close())
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    finally:
        _runtime['loop'].stop()
        _runtime.clear()


# Route for handling incoming messages
@app.route('/chat', methods=['POST'])
def chat():
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    session_id = str(data.get('session_id') or 'default')

    if not isinstance(message, str) or not message.strip():
        return jsonify({'error': 'No message provided'}), 400

    runtime = get_runtime()
    response = runtime['loop'].run(runtime['sessions'].process(session_id, message))

    return jsonify({'session_id': session_id, **response.to_dict()})


@app.route('/topics', methods=['GET'])
def topics():
    runtime = get_runtime()
    registry = runtime['sessions'].registry
    return jsonify({
        'topics': [
            {'name': topic.name, 'description': topic.description, 'related': topic.related_topics}
            for topic in registry
        ]
    })


@app.route('/health', methods=['GET'])
def health():
    runtime = get_runtime()
    sessions = runtime['sessions']
    ai_health = runtime['loop'].run(sessions.ai.health_check())
    return jsonify({
        'status': 'healthy',
        'topics': len(sessions.registry),
        'sessions': len(sessions.sessions),
        'ai': ai_health,
    })


if __name__ == '__main__':
    settings = get_settings()
    app.run(debug=settings.debug_mode, port=5000, use_reloader=False)
